import threading
from pathlib import Path
from typing import Any

import pytest

from agentic.agents import ExecutionResult, MockExecutor, UnsupportedExecutor
from agentic.agents.base import AgentExecutor
from agentic.changes import ChangeManager
from agentic.checkpoint import Checkpoint, CheckpointManager
from agentic.config import AgenticConfig
from agentic.errors import (
    AutopilotCancelledError,
    InconsistentStateError,
    NotFoundError,
    ValidationError,
)
from agentic.orchestrator import AutopilotLoop, AutopilotOutcome, State, build_prompt
from agentic.tasks import BACKLOG, DONE, IN_PROGRESS, Task, TaskStore


class RefusingStore(TaskStore):
    def claim(self, task_id: str, owner: str) -> Task:
        raise NotFoundError(f"task {task_id} was claimed elsewhere")


class PartialExecutor(AgentExecutor):
    name = "partial"

    def execute(self, prompt: str, task: Task) -> ExecutionResult:
        return ExecutionResult(
            output="half done",
            success=False,
            criteria_met=task.acceptance[:1],
            criteria_failed=task.acceptance[1:],
            tokens_used=300,
        )


def _config(tmp_path: Path) -> AgenticConfig:
    return AgenticConfig.default().resolve(tmp_path)


def _store(config: AgenticConfig) -> TaskStore:
    return TaskStore(Path(config.paths.tasks_dir))


def _add_task(store: TaskStore, title: str, **fields: object) -> Task:
    task = store.create_task(title)
    for key, value in fields.items():
        setattr(task, key, value)
    store.update_task(task)
    return task


def _loop(
    config: AgenticConfig, store: TaskStore, tmp_path: Path, **kwargs: Any
) -> AutopilotLoop:
    return AutopilotLoop(config, store, root=tmp_path, owner="tester", **kwargs)


def test_empty_project_completes_immediately(tmp_path: Path) -> None:
    config = _config(tmp_path)

    result = _loop(config, _store(config), tmp_path).run()

    assert result.outcome == AutopilotOutcome.COMPLETED
    assert result.iterations == 1
    assert result.claimed == []


def test_empty_backlog_with_in_progress_work_is_inconsistent(tmp_path: Path) -> None:
    config = _config(tmp_path)
    store = _store(config)
    task = _add_task(store, "Stuck")
    store.claim(task.id, "someone")

    with pytest.raises(InconsistentStateError, match="1 still in progress"):
        _loop(config, store, tmp_path).run()


def test_non_positive_max_iterations_defaults_to_ten(tmp_path: Path) -> None:
    config = _config(tmp_path)

    assert _loop(config, _store(config), tmp_path, max_iterations=0).max_iterations == 10
    assert _loop(config, _store(config), tmp_path, max_iterations=-3).max_iterations == 10
    assert _loop(config, _store(config), tmp_path, max_iterations=2).max_iterations == 2


def test_prefers_first_fully_ready_task(tmp_path: Path) -> None:
    config = _config(tmp_path)
    store = _store(config)
    _add_task(store, "Needs input", inputs=["missing.md"])
    ready = _add_task(store, "Ready now")

    result = _loop(config, store, tmp_path, max_iterations=1).run()

    assert result.outcome == AutopilotOutcome.MAX_ITERATIONS
    assert result.claimed == [ready.id]
    claimed = store.load_collection(IN_PROGRESS)[0]
    assert claimed.assigned_to == "tester"


def test_falls_back_to_first_task_when_none_ready(tmp_path: Path) -> None:
    config = _config(tmp_path)
    store = _store(config)
    first = _add_task(store, "Needs input", inputs=["missing.md"])
    _add_task(store, "Needs spec", spec_refs=["missing-spec.md"])

    result = _loop(config, store, tmp_path, max_iterations=1).run()

    assert result.claimed == [first.id]


def test_claims_until_max_iterations_is_reached(tmp_path: Path) -> None:
    config = _config(tmp_path)
    store = _store(config)
    ids = [_add_task(store, f"Task {index}").id for index in range(3)]

    result = _loop(config, store, tmp_path, max_iterations=2).run()

    assert result.outcome == AutopilotOutcome.MAX_ITERATIONS
    assert result.claimed == ids[:2]
    assert [task.id for task in store.load_collection(BACKLOG)] == ids[2:]


def test_dry_run_reports_candidate_without_claiming(tmp_path: Path) -> None:
    config = _config(tmp_path)
    store = _store(config)
    task = _add_task(store, "Look but do not touch")

    result = _loop(config, store, tmp_path, dry_run=True).run()

    assert result.outcome == AutopilotOutcome.DRY_RUN
    assert result.candidate == task.id
    assert result.claimed == []
    assert [item.id for item in store.load_collection(BACKLOG)] == [task.id]


def test_cancellation_is_checked_before_each_iteration(tmp_path: Path) -> None:
    config = _config(tmp_path)
    store = _store(config)
    _add_task(store, "Never claimed")
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(AutopilotCancelledError):
        _loop(config, store, tmp_path, cancel_event=cancel).run()

    assert store.load_collection(IN_PROGRESS) == []


def test_claim_failures_are_logged_and_skipped(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    config = _config(tmp_path)
    store = RefusingStore(Path(config.paths.tasks_dir))
    _add_task(store, "Contested")

    with caplog.at_level("WARNING"):
        result = _loop(config, store, tmp_path, max_iterations=2).run()

    assert result.outcome == AutopilotOutcome.MAX_ITERATIONS
    assert result.claimed == []
    assert caplog.text.count("Could not claim task") == 2


def test_scope_context_is_generated_and_failures_are_warnings(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    config = _config(tmp_path)
    store = _store(config)
    package = tmp_path / "pkg"
    package.mkdir()
    (package / "models.py").write_text("import yaml\n\nclass User:\n    pass\n", encoding="utf-8")
    _add_task(store, "Scoped", scope=["pkg", "missing-dir"])

    with caplog.at_level("WARNING"):
        result = _loop(config, store, tmp_path, max_iterations=1).run()

    assert len(result.claimed) == 1
    assert "## Key Files\n- models.py" in (package / "context.md").read_text(encoding="utf-8")
    assert "Context generation failed for missing-dir" in caplog.text


def test_blocked_tracks_are_skipped(tmp_path: Path) -> None:
    config = _config(tmp_path)
    store = _store(config)
    _add_task(store, "Planning track", track_id="t-plan")
    active = _add_task(store, "Active track", track_id="t-active")
    statuses = {"t-plan": "planning", "t-active": "active"}

    result = _loop(
        config, store, tmp_path, max_iterations=1, track_status=statuses.get
    ).run()

    assert result.claimed == [active.id]


def test_all_tasks_on_inactive_tracks_report_blocked(tmp_path: Path) -> None:
    config = _config(tmp_path)
    store = _store(config)
    _add_task(store, "Idea", track_id="t-idea")

    result = _loop(config, store, tmp_path, track_status=lambda track_id: "ideation").run()

    assert result.outcome == AutopilotOutcome.BLOCKED
    assert result.claimed == []


def test_pending_changes_are_synced_before_the_first_iteration(tmp_path: Path) -> None:
    config = _config(tmp_path)
    store = _store(config)
    changes = ChangeManager(Path(config.paths.openspec_dir))
    change = changes.init("Add Login")
    (changes.change_dir(change.id) / "tasks.md").write_text("1. Create model\n", encoding="utf-8")

    result = _loop(config, store, tmp_path, change_manager=changes, max_iterations=1).run()

    assert result.sync is not None
    assert result.sync.changes_imported == ["add-login"]
    assert result.claimed == changes.get("add-login").task_ids


def test_undecodable_change_does_not_stop_the_pre_run_sync(tmp_path: Path) -> None:
    config = _config(tmp_path)
    store = _store(config)
    changes = ChangeManager(Path(config.paths.openspec_dir))
    bad = changes.init("Bad")
    (changes.change_dir(bad.id) / "tasks.md").write_bytes(b"1. caf\xe9\n")
    good = changes.init("Good")
    (changes.change_dir(good.id) / "tasks.md").write_text("1. Ok\n", encoding="utf-8")

    result = _loop(config, store, tmp_path, change_manager=changes, max_iterations=1).run()

    assert result.sync is not None
    assert result.sync.changes_imported == ["good"]
    assert len(result.sync.errors) == 1
    assert result.claimed == changes.get("good").task_ids


def test_execute_task_requires_an_executor(tmp_path: Path) -> None:
    config = _config(tmp_path)
    store = _store(config)
    task = _add_task(store, "One")

    with pytest.raises(ValidationError, match="no agent executor attached"):
        _loop(config, store, tmp_path).execute_task(task)


def test_mock_executor_completes_tasks_and_finishes(tmp_path: Path) -> None:
    config = _config(tmp_path)
    store = _store(config)
    first = _add_task(store, "One", acceptance=["works"])
    second = _add_task(store, "Two")
    executor = MockExecutor()

    result = _loop(config, store, tmp_path, executor=executor).run()

    assert result.outcome == AutopilotOutcome.COMPLETED
    assert result.iterations == 3
    assert [report.task_id for report in result.executions] == [first.id, second.id]
    assert all(report.completed for report in result.executions)
    assert all(report.final_state == State.DONE for report in result.executions)
    assert [task.id for task in store.load_collection(DONE)] == [first.id, second.id]
    assert executor.prompts[0] == build_prompt(store.load_collection(DONE)[0])


def test_failed_verification_keeps_task_in_progress_and_checkpoints(tmp_path: Path) -> None:
    config = _config(tmp_path)
    config.checkpoint.iteration_interval = 1
    store = _store(config)
    task = _add_task(store, "Hard", acceptance=["first", "second"])
    checkpoints = CheckpointManager(Path(config.paths.checkpoint_dir))

    result = _loop(
        config,
        store,
        tmp_path,
        executor=PartialExecutor(),
        checkpoint_manager=checkpoints,
        max_iterations=1,
    ).run()

    report = result.executions[0]
    assert report.success is False
    assert report.completed is False
    assert report.checkpointed is True
    assert report.final_state == State.EXECUTION
    assert [item.id for item in store.load_collection(IN_PROGRESS)] == [task.id]
    saved = checkpoints.load(task.id)
    assert saved is not None
    assert saved.criteria_met == ["first"]
    assert saved.criteria_left == ["second"]
    assert saved.tokens_used == 300


def test_execution_resumes_from_latest_checkpoint(tmp_path: Path) -> None:
    config = _config(tmp_path)
    store = _store(config)
    task = _add_task(store, "Resumable")
    checkpoints = CheckpointManager(Path(config.paths.checkpoint_dir))
    checkpoints.save(Checkpoint(task_id=task.id, iteration=4, tokens_used=5000))

    result = _loop(
        config,
        store,
        tmp_path,
        executor=MockExecutor(tokens_per_call=1000),
        checkpoint_manager=checkpoints,
        max_iterations=1,
    ).run()

    report = result.executions[0]
    assert report.iteration == 5
    assert report.total_tokens == 6000
    assert report.checkpointed is True
    assert report.completed is True
    assert checkpoints.list(task.id) == []
    assert checkpoints.load(task.id) is None


def test_token_usage_warning(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    config = _config(tmp_path)
    config.autopilot.token_limit = 1200
    store = _store(config)
    _add_task(store, "Expensive")

    with caplog.at_level("WARNING"):
        _loop(config, store, tmp_path, executor=MockExecutor(), max_iterations=1).run()

    assert "Token usage at 83.3% of limit (1000/1200)" in caplog.text


def test_unsupported_executor_errors_are_not_fatal(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    config = _config(tmp_path)
    store = _store(config)
    task = _add_task(store, "Needs gemini")

    with caplog.at_level("WARNING"):
        result = _loop(
            config, store, tmp_path, executor=UnsupportedExecutor("gemini"), max_iterations=1
        ).run()

    report = result.executions[0]
    assert report.success is False
    assert "not implemented" in report.error
    assert report.final_state == State.EXECUTION
    assert [item.id for item in store.load_collection(IN_PROGRESS)] == [task.id]
    assert "Agent execution error" in caplog.text
