from __future__ import annotations

from agentic.context.generator import CONTEXT_FILE, DirectoryContext, DirectoryContextGenerator

__all__ = ["CONTEXT_FILE", "DirectoryContext", "DirectoryContextGenerator"]
