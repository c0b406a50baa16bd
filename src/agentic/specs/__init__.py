from agentic.specs.resolver import ResolvedSpec, SpecResolver

__all__ = ["ResolvedSpec", "SpecResolver"]
