from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from agentic.errors import NotFoundError

DEFAULT_SPEC_DIRS = (".agentic/spec",)


@dataclass(slots=True)
class ResolvedSpec:
    ref: str
    found: bool
    path: str = ""
    content: str = ""
    error: str = ""


class SpecResolver:
    """Resolves spec references against a list of directories, first match wins."""

    def __init__(self, spec_dirs: list[str] | None = None, *, base_dir: Path | None = None) -> None:
        self.base_dir = (base_dir or Path.cwd()).resolve()
        self.spec_dirs = [Path(item) for item in (spec_dirs or DEFAULT_SPEC_DIRS)]

    def _anchor(self, path: Path) -> Path:
        return path if path.is_absolute() else self.base_dir / path

    def resolve(self, ref: str) -> ResolvedSpec:
        direct = Path(ref)
        if direct.is_absolute():
            if direct.is_file():
                return self._read(ref, direct)
            return ResolvedSpec(ref=ref, found=False, error=f"spec {ref!r} not found at path {ref}")

        candidate = self._anchor(direct)
        if candidate.is_file():
            return self._read(ref, candidate)

        for spec_dir in self.spec_dirs:
            candidate = self._anchor(spec_dir) / ref
            if candidate.is_file():
                return self._read(ref, candidate)

        return ResolvedSpec(
            ref=ref,
            found=False,
            error=f"spec {ref!r} not found in any configured directory",
        )

    def resolve_all(self, refs: list[str]) -> list[ResolvedSpec]:
        return [self.resolve(ref) for ref in refs]

    def read_spec(self, ref: str) -> str:
        resolved = self.resolve(ref)
        if not resolved.found:
            raise NotFoundError(resolved.error)
        return resolved.content

    @staticmethod
    def _read(ref: str, path: Path) -> ResolvedSpec:
        resolved_path = str(path.resolve())
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as exc:
            return ResolvedSpec(
                ref=ref,
                found=False,
                path=resolved_path,
                error=f"failed to read spec {ref!r}: {exc}",
            )
        return ResolvedSpec(ref=ref, found=True, path=resolved_path, content=content)
