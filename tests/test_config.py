import tomllib
from pathlib import Path

import pytest

from agentic import __version__
from agentic.config import AgenticConfig, dumps_toml, load_config, save_config


def test_config_roundtrip(tmp_path: Path) -> None:
    config_path = tmp_path / "agentic.toml"
    config = AgenticConfig.default()
    config.project.name = "agentic-test"
    config.paths.spec_dirs = ["docs/specs"]
    config.checkpoint.iteration_interval = 3
    config.checkpoint.token_thresholds = [0.6, 0.85]
    config.autopilot.max_iterations = 4
    config.autopilot.token_limit = 50_000
    config.autopilot.owner = "ci-bot"
    config.agent.active = "openai"

    save_config(config_path, config)
    loaded = load_config(config_path)

    assert loaded.project.name == "agentic-test"
    assert loaded.paths.tasks_dir == ".agentic/tasks"
    assert loaded.paths.spec_dirs == ["docs/specs"]
    assert loaded.checkpoint.iteration_interval == 3
    assert loaded.checkpoint.token_thresholds == [0.6, 0.85]
    assert loaded.autopilot.max_iterations == 4
    assert loaded.autopilot.token_limit == 50_000
    assert loaded.autopilot.stop_signal == "<promise>COMPLETE</promise>"
    assert loaded.autopilot_owner() == "ci-bot"
    assert loaded.agent.active == "openai"


def test_missing_config_uses_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "agentic.toml")

    assert config.autopilot.max_iterations == 10
    assert config.autopilot.token_limit == 200_000
    assert config.checkpoint.iteration_interval == 5
    assert config.checkpoint.token_thresholds == [0.5, 0.75, 0.9]


def test_toml_dump_contains_every_section() -> None:
    rendered = dumps_toml(AgenticConfig.default())

    for section in ("[project]", "[paths]", "[checkpoint]", "[autopilot]", "[agent]"):
        assert section in rendered
    assert "token_thresholds = [0.5, 0.75, 0.9]" in rendered
    assert tomllib.loads(rendered)["autopilot"]["stop_signal"] == "<promise>COMPLETE</promise>"


def test_resolve_anchors_relative_paths(tmp_path: Path) -> None:
    config = AgenticConfig.default()
    config.paths.checkpoint_dir = "/var/checkpoints"

    resolved = config.resolve(tmp_path)

    assert resolved.paths.tasks_dir == str(tmp_path / ".agentic" / "tasks")
    assert resolved.paths.checkpoint_dir == "/var/checkpoints"
    assert config.paths.tasks_dir == ".agentic/tasks"


def test_autopilot_owner_falls_back_to_user(monkeypatch: pytest.MonkeyPatch) -> None:
    config = AgenticConfig.default()

    monkeypatch.setenv("USER", "alice")
    assert config.autopilot_owner() == "alice"
    monkeypatch.delenv("USER")
    assert config.autopilot_owner() == "autopilot"


def test_package_version_constant_matches_pyproject() -> None:
    project_root = Path(__file__).resolve().parents[1]
    pyproject = tomllib.loads((project_root / "pyproject.toml").read_text(encoding="utf-8"))

    assert __version__ == pyproject["project"]["version"]
