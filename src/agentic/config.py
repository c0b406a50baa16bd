from __future__ import annotations

import json
import os
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path

DEFAULT_CONFIG_FILE = "agentic.toml"


@dataclass(slots=True)
class ProjectConfig:
    name: str = "my-project"
    version: str = "0.1.0"


@dataclass(slots=True)
class PathsConfig:
    tasks_dir: str = ".agentic/tasks"
    checkpoint_dir: str = ".agentic/checkpoints"
    openspec_dir: str = ".agentic/openspec/changes"
    spec_dirs: list[str] = field(
        default_factory=lambda: [".agentic/spec", "openspec/specs", ".specify/specs"]
    )


@dataclass(slots=True)
class CheckpointConfig:
    iteration_interval: int = 5
    token_thresholds: list[float] = field(default_factory=lambda: [0.5, 0.75, 0.9])


@dataclass(slots=True)
class AutopilotConfig:
    max_iterations: int = 10
    token_limit: int = 200_000
    stop_signal: str = "<promise>COMPLETE</promise>"
    owner: str = ""


@dataclass(slots=True)
class AgentConfig:
    active: str = ""
    model: str = "gpt-5-codex"


@dataclass(slots=True)
class AgenticConfig:
    project: ProjectConfig = field(default_factory=ProjectConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    checkpoint: CheckpointConfig = field(default_factory=CheckpointConfig)
    autopilot: AutopilotConfig = field(default_factory=AutopilotConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)

    @classmethod
    def default(cls) -> AgenticConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> AgenticConfig:
        return cls(
            project=ProjectConfig(**data.get("project", {})),
            paths=PathsConfig(**data.get("paths", {})),
            checkpoint=CheckpointConfig(**data.get("checkpoint", {})),
            autopilot=AutopilotConfig(**data.get("autopilot", {})),
            agent=AgentConfig(**data.get("agent", {})),
        )

    def to_dict(self) -> dict:
        return {
            "project": {
                "name": self.project.name,
                "version": self.project.version,
            },
            "paths": {
                "tasks_dir": self.paths.tasks_dir,
                "checkpoint_dir": self.paths.checkpoint_dir,
                "openspec_dir": self.paths.openspec_dir,
                "spec_dirs": list(self.paths.spec_dirs),
            },
            "checkpoint": {
                "iteration_interval": self.checkpoint.iteration_interval,
                "token_thresholds": list(self.checkpoint.token_thresholds),
            },
            "autopilot": {
                "max_iterations": self.autopilot.max_iterations,
                "token_limit": self.autopilot.token_limit,
                "stop_signal": self.autopilot.stop_signal,
                "owner": self.autopilot.owner,
            },
            "agent": {
                "active": self.agent.active,
                "model": self.agent.model,
            },
        }

    def resolve(self, root: Path) -> AgenticConfig:
        """Return a copy whose relative paths are anchored at ``root``."""

        def _anchor(value: str) -> str:
            path = Path(value)
            return str(path if path.is_absolute() else (root / path))

        paths = replace(
            self.paths,
            tasks_dir=_anchor(self.paths.tasks_dir),
            checkpoint_dir=_anchor(self.paths.checkpoint_dir),
            openspec_dir=_anchor(self.paths.openspec_dir),
            spec_dirs=[_anchor(item) for item in self.paths.spec_dirs],
        )
        return replace(self, paths=paths)

    def autopilot_owner(self) -> str:
        if self.autopilot.owner:
            return self.autopilot.owner
        return os.environ.get("USER") or "autopilot"


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        rendered = f"{value:.3f}".rstrip("0").rstrip(".")
        return rendered if rendered else "0"
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    return json.dumps(str(value), ensure_ascii=False)


def dumps_toml(config: AgenticConfig) -> str:
    data = config.to_dict()
    lines: list[str] = []
    for section in ["project", "paths", "checkpoint", "autopilot", "agent"]:
        lines.append(f"[{section}]")
        for key, value in data[section].items():
            lines.append(f"{key} = {_toml_value(value)}")
        lines.append("")
    return "\n".join(lines).strip() + "\n"


def load_config(path: Path) -> AgenticConfig:
    if not path.exists():
        return AgenticConfig.default()
    return AgenticConfig.from_dict(tomllib.loads(path.read_text(encoding="utf-8")))


def save_config(path: Path, config: AgenticConfig) -> None:
    path.write_text(dumps_toml(config), encoding="utf-8")
