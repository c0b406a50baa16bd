from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from agentic.specs.resolver import SpecResolver
from agentic.tasks.models import Task

CHECK_INPUT = "input-exists"
CHECK_SPEC = "spec-resolvable"
CHECK_SCOPE = "scope-exists"

# Scope checks are advisory; only these make a task not ready.
BLOCKING_CHECKS = frozenset({CHECK_INPUT, CHECK_SPEC})


@dataclass(slots=True)
class ReadinessCheck:
    name: str
    passed: bool
    message: str

    @property
    def blocking(self) -> bool:
        return self.name in BLOCKING_CHECKS


@dataclass(slots=True)
class ReadinessResult:
    task_id: str
    ready: bool = True
    checks: list[ReadinessCheck] = field(default_factory=list)

    def failed(self) -> list[ReadinessCheck]:
        return [check for check in self.checks if not check.passed]


def can_claim_task(
    task: Task,
    resolver: SpecResolver | None = None,
    *,
    base_dir: Path | None = None,
) -> ReadinessResult:
    root = (base_dir or Path.cwd()).resolve()
    result = ReadinessResult(task_id=task.id)

    def _anchor(value: str) -> Path:
        path = Path(value)
        return path if path.is_absolute() else root / path

    for item in task.inputs:
        exists = _anchor(item).exists()
        result.checks.append(
            ReadinessCheck(
                name=CHECK_INPUT,
                passed=exists,
                message=(
                    f"input file {item!r} exists" if exists else f"input file {item!r} not found"
                ),
            )
        )

    if task.spec_refs:
        spec_resolver = resolver or SpecResolver(base_dir=root)
        for resolved in spec_resolver.resolve_all(task.spec_refs):
            if resolved.found:
                message = f"spec {resolved.ref!r} resolved at {resolved.path}"
            else:
                message = f"spec {resolved.ref!r} not resolvable: {resolved.error}"
            result.checks.append(
                ReadinessCheck(name=CHECK_SPEC, passed=resolved.found, message=message)
            )

    for item in task.scope:
        is_dir = _anchor(item).is_dir()
        result.checks.append(
            ReadinessCheck(
                name=CHECK_SCOPE,
                passed=is_dir,
                message=(
                    f"scope directory {item!r} exists"
                    if is_dir
                    else f"scope directory {item!r} not found (warning only)"
                ),
            )
        )

    result.ready = not any(check.blocking and not check.passed for check in result.checks)
    return result


def format_readiness_result(result: ReadinessResult) -> str:
    lines = [f"Task {result.task_id}: {'READY' if result.ready else 'NOT READY'}"]
    for check in result.checks:
        icon = "+" if check.passed else "-"
        lines.append(f"  [{icon}] {check.name}: {check.message}")
    return "\n".join(lines) + "\n"
