from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from agentic.agents.base import AgentExecutor, ExecutionResult
from agentic.changes.manager import ChangeManager
from agentic.changes.models import SyncResult
from agentic.checkpoint.manager import (
    DEFAULT_ITERATION_INTERVAL,
    DEFAULT_TOKEN_THRESHOLDS,
    CheckpointManager,
    create_checkpoint_from_result,
    get_progress,
    should_checkpoint,
)
from agentic.config import AgenticConfig
from agentic.context.generator import DirectoryContextGenerator
from agentic.errors import (
    AgenticError,
    AutopilotCancelledError,
    ExecutorError,
    InconsistentStateError,
    ValidationError,
)
from agentic.orchestrator.state import Event, State, StateMachine
from agentic.specs.resolver import SpecResolver
from agentic.tasks.models import BACKLOG, IN_PROGRESS, Task
from agentic.tasks.readiness import can_claim_task, format_readiness_result
from agentic.tasks.store import TaskStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10
BLOCKED_TRACK_STATUSES = frozenset({"ideation", "planning"})
TOKEN_WARNING_RATIO = 0.8
TOKEN_CRITICAL_RATIO = 0.9

TrackStatusLookup = Callable[[str], str | None]


class AutopilotOutcome(StrEnum):
    COMPLETED = "completed"
    BLOCKED = "blocked"
    DRY_RUN = "dry-run"
    MAX_ITERATIONS = "max-iterations"


@dataclass(slots=True)
class ExecutionReport:
    task_id: str
    iteration: int
    success: bool
    tokens_used: int = 0
    total_tokens: int = 0
    checkpointed: bool = False
    completed: bool = False
    final_state: State = State.IDLE
    error: str = ""


@dataclass(slots=True)
class AutopilotResult:
    outcome: AutopilotOutcome
    iterations: int = 0
    candidate: str | None = None
    claimed: list[str] = field(default_factory=list)
    executions: list[ExecutionReport] = field(default_factory=list)
    sync: SyncResult | None = None


def build_prompt(task: Task) -> str:
    prompt = f"Complete task {task.id}: {task.title}"
    if task.description:
        prompt += f"\n\n{task.description}"
    if task.acceptance:
        prompt += "\n\nAcceptance criteria:\n" + "\n".join(f"- {item}" for item in task.acceptance)
    return prompt


class AutopilotLoop:
    """Selects, claims and prepares backlog tasks until nothing is left to do.

    The loop polls ``cancel_event`` once per iteration. When an executor is
    attached each claimed task also gets one agent execution session that
    walks the orchestrator state machine and checkpoints its progress.
    """

    def __init__(
        self,
        config: AgenticConfig,
        task_store: TaskStore,
        *,
        root: Path | None = None,
        resolver: SpecResolver | None = None,
        context_generator: DirectoryContextGenerator | None = None,
        change_manager: ChangeManager | None = None,
        executor: AgentExecutor | None = None,
        checkpoint_manager: CheckpointManager | None = None,
        track_status: TrackStatusLookup | None = None,
        dry_run: bool = False,
        max_iterations: int | None = None,
        cancel_event: threading.Event | None = None,
        owner: str | None = None,
    ) -> None:
        self.config = config
        self.task_store = task_store
        self.root = root or Path.cwd()
        self.resolver = resolver or SpecResolver(
            [*config.paths.spec_dirs, config.paths.openspec_dir], base_dir=self.root
        )
        self.context_generator = context_generator or DirectoryContextGenerator(base_dir=self.root)
        self.change_manager = change_manager
        self.executor = executor
        self.checkpoints = checkpoint_manager or CheckpointManager(
            Path(config.paths.checkpoint_dir)
        )
        self.track_status = track_status
        self.dry_run = dry_run
        if max_iterations is None:
            max_iterations = config.autopilot.max_iterations
        self.max_iterations = max_iterations if max_iterations > 0 else DEFAULT_MAX_ITERATIONS
        self.cancel_event = cancel_event or threading.Event()
        self.owner = owner or config.autopilot_owner()

    def cancel(self) -> None:
        self.cancel_event.set()

    def is_blocked(self, task: Task) -> bool:
        if not task.track_id or self.track_status is None:
            return False
        status = self.track_status(task.track_id)
        return status is not None and status.lower() in BLOCKED_TRACK_STATUSES

    def select_next_task(self) -> Task | None:
        """Return the first fully ready backlog task, else the first unblocked one."""
        backlog = self.task_store.load_collection(BACKLOG)
        if not backlog:
            in_progress = self.task_store.load_collection(IN_PROGRESS)
            if in_progress:
                raise InconsistentStateError(
                    f"no backlog tasks but {len(in_progress)} still in progress"
                )
            return None

        candidates = [task for task in backlog if not self.is_blocked(task)]
        for task in candidates:
            if can_claim_task(task, self.resolver, base_dir=self.root).ready:
                return task
        return candidates[0] if candidates else None

    def _sync_changes(self) -> SyncResult | None:
        if self.change_manager is None or self.dry_run:
            return None
        result = self.change_manager.sync(self.task_store)
        if result.changes_imported:
            logger.info(
                "Auto-imported %d task(s) from %d change(s)",
                result.tasks_created,
                len(result.changes_imported),
            )
        for message in result.errors:
            logger.warning("Change sync: %s", message)
        return result

    def _prepare_scope(self, task: Task) -> None:
        for scope in task.scope:
            try:
                self.context_generator.generate(scope)
            except (AgenticError, OSError) as exc:
                logger.warning("Context generation failed for %s: %s", scope, exc)

    def run(self) -> AutopilotResult:
        result = AutopilotResult(outcome=AutopilotOutcome.MAX_ITERATIONS)
        logger.info(
            "Autopilot starting (max iterations: %d, agent execution: %s%s)",
            self.max_iterations,
            "enabled" if self.executor is not None else "disabled",
            ", dry run" if self.dry_run else "",
        )
        result.sync = self._sync_changes()

        for iteration in range(1, self.max_iterations + 1):
            if self.cancel_event.is_set():
                logger.info("Autopilot cancelled")
                raise AutopilotCancelledError(f"autopilot cancelled at iteration {iteration}")
            result.iterations = iteration

            task = self.select_next_task()
            if task is None:
                if self.task_store.load_collection(BACKLOG):
                    logger.info("Every backlog task is waiting on an inactive track")
                    result.outcome = AutopilotOutcome.BLOCKED
                else:
                    logger.info("All tasks complete. Autopilot finished.")
                    result.outcome = AutopilotOutcome.COMPLETED
                return result

            logger.info(
                "Iteration %d/%d: next task [%s] %s",
                iteration,
                self.max_iterations,
                task.id,
                task.title,
            )
            readiness = can_claim_task(task, self.resolver, base_dir=self.root)
            logger.info("%s", format_readiness_result(readiness).rstrip())

            if self.dry_run:
                logger.info("[DRY RUN] Would claim task %s and generate context", task.id)
                result.candidate = task.id
                result.outcome = AutopilotOutcome.DRY_RUN
                return result

            try:
                claimed = self.task_store.claim(task.id, self.owner)
            except AgenticError as exc:
                logger.warning("Could not claim task %s: %s", task.id, exc)
                continue
            result.claimed.append(claimed.id)

            self._prepare_scope(claimed)

            if self.executor is None:
                logger.info("Task %s is ready for agent execution", claimed.id)
                continue
            result.executions.append(self.execute_task(claimed))

        logger.info("Reached max iterations (%d). Stopping autopilot.", self.max_iterations)
        return result

    def execute_task(self, task: Task) -> ExecutionReport:
        """Run one agent execution session for a claimed task."""
        if self.executor is None:
            raise ValidationError(f"no agent executor attached; cannot execute {task.id}")
        agent_name = self.config.agent.active or self.executor.name
        token_limit = self.config.autopilot.token_limit
        policy = self.config.checkpoint

        machine = StateMachine()
        machine.handle_event(Event.TASK_STARTED)
        machine.handle_event(Event.PLAN_APPROVED)

        iteration = 0
        total_tokens = 0
        latest = self.checkpoints.load(task.id)
        if latest is not None:
            logger.info(
                "Resuming %s from checkpoint (iteration %d, %d tokens used)",
                task.id,
                latest.iteration,
                latest.tokens_used,
            )
            iteration = latest.iteration
            total_tokens = latest.tokens_used
        iteration += 1

        report = ExecutionReport(task_id=task.id, iteration=iteration, success=False)
        try:
            outcome: ExecutionResult = self.executor.execute(build_prompt(task), task)
        except ExecutorError as exc:
            logger.warning("Agent execution error for %s: %s", task.id, exc)
            report.error = str(exc)
            report.total_tokens = total_tokens
            report.final_state = machine.state
            return report

        total_tokens += outcome.tokens_used
        report.tokens_used = outcome.tokens_used
        report.total_tokens = total_tokens
        report.success = outcome.success
        machine.handle_event(Event.WORK_COMPLETED)
        logger.info(
            "Agent %s finished %s (tokens: %d, total: %d)",
            agent_name,
            task.id,
            outcome.tokens_used,
            total_tokens,
        )

        if should_checkpoint(
            total_tokens,
            token_limit,
            iteration,
            policy.iteration_interval or DEFAULT_ITERATION_INTERVAL,
            policy.token_thresholds or DEFAULT_TOKEN_THRESHOLDS,
        ):
            checkpoint = create_checkpoint_from_result(
                task.id, iteration, agent_name, outcome, task
            )
            checkpoint.tokens_used = total_tokens
            try:
                self.checkpoints.save(checkpoint)
            except AgenticError as exc:
                logger.warning("Failed to save checkpoint for %s: %s", task.id, exc)
            else:
                report.checkpointed = True
                logger.info(
                    "Checkpoint saved (iteration %d, %.1f%% complete)",
                    iteration,
                    get_progress(checkpoint, len(task.acceptance)),
                )

        if token_limit > 0:
            ratio = total_tokens / token_limit
            if ratio >= TOKEN_CRITICAL_RATIO:
                logger.warning(
                    "Token usage at %.1f%% of limit (%d/%d); consider pausing and resuming later",
                    ratio * 100,
                    total_tokens,
                    token_limit,
                )
            elif ratio >= TOKEN_WARNING_RATIO:
                logger.warning(
                    "Token usage at %.1f%% of limit (%d/%d)", ratio * 100, total_tokens, token_limit
                )

        if not outcome.success:
            machine.handle_event(Event.VERIFICATION_FAIL)
            logger.warning(
                "Criteria not met for %s (%d/%d): %s",
                task.id,
                len(outcome.criteria_met),
                len(task.acceptance),
                ", ".join(outcome.criteria_failed) or outcome.error_message or "unknown",
            )
            report.final_state = machine.state
            return report

        machine.handle_event(Event.VERIFICATION_PASS)
        report.final_state = machine.state
        try:
            self.task_store.complete_task(task.id)
        except AgenticError as exc:
            logger.warning("Could not complete task %s: %s", task.id, exc)
            return report
        report.completed = True
        logger.info("Task %s completed by %s in %d iteration(s)", task.id, agent_name, iteration)
        try:
            self.checkpoints.delete_all(task.id)
        except AgenticError as exc:
            logger.warning("Could not clean up checkpoints for %s: %s", task.id, exc)
        return report
