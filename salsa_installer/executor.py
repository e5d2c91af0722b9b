"""Plan execution with checkpointing, retry, compensation and resume.

Per action: PENDING -> RUNNING -> SUCCEEDED | FAILED (or SKIPPED when its
detection predicate does not match this machine). On FAILED:

- idempotent actions are retried up to ``retries`` times, then the run is
  ABORTED with the checkpoint left at the last success;
- a non-idempotent action with a compensation triggers rollback of itself
  and of every action already completed in the stage, newest first, and
  the run is ABORTED at the stage boundary;
- anything else HALTS the run immediately.

A failed precondition and a user interrupt take the rollback path too.
Only the coordinating thread writes checkpoints.
"""

from __future__ import annotations

import concurrent.futures
import enum
import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .checkpoint import (
    OUTCOME_COMPENSATED,
    OUTCOME_COMPLETED,
    OUTCOME_SKIPPED,
    OUTCOME_SUCCEEDED,
    Checkpoint,
    CheckpointStore,
    utc_now,
)
from .errors import (
    EXIT_OK,
    ActionExecutionFailed,
    CheckpointMismatch,
    EnvironmentQueryFailed,
    InstallerError,
    PreconditionNotMet,
    UserAborted,
)
from .lib.command import SystemRunner
from .plan import Action, Plan, Stage
from .preconditions import ActionContext
from .session import Session

logger = logging.getLogger(__name__)

MAX_WORKERS_CAP = 4
DEFAULT_RETRIES = 1


def default_workers() -> int:
    return max(1, min(os.cpu_count() or 1, MAX_WORKERS_CAP))


class ActionState(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    COMPENSATED = "compensated"


class RunStatus(str, enum.Enum):
    SUCCEEDED = "succeeded"
    ABORTED = "aborted"
    HALTED = "halted"


@dataclass(frozen=True)
class ActionOutcome:
    action: Action
    state: ActionState
    error: Optional[InstallerError] = None


@dataclass
class RunResult:
    status: RunStatus
    checkpoint_location: str
    executed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    compensated: List[str] = field(default_factory=list)
    compensation_errors: List[ActionExecutionFailed] = field(default_factory=list)
    states: Dict[str, ActionState] = field(default_factory=dict)
    failure: Optional[InstallerError] = None
    failed_action: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == RunStatus.SUCCEEDED

    @property
    def exit_code(self) -> int:
        if self.ok:
            return EXIT_OK
        assert self.failure is not None
        return self.failure.exit_code


class _Interrupted(Exception):
    def __init__(self, running: Sequence[Action]) -> None:
        super().__init__("interrupted")
        self.running = list(running)


class Executor:
    def __init__(
        self,
        runner: SystemRunner,
        store: CheckpointStore,
        *,
        session: Session,
        retries: int = DEFAULT_RETRIES,
        max_workers: Optional[int] = None,
    ) -> None:
        if retries < 0:
            raise ValueError("retries must be >= 0")
        self.runner = runner
        self.store = store
        self.ctx = ActionContext(runner=runner, session=session)
        self.retries = retries
        self.max_workers = max(1, min(max_workers or default_workers(), MAX_WORKERS_CAP))
        self._package_lock = threading.Lock()

    # -- public API ---------------------------------------------------------

    def run(self, plan: Plan) -> RunResult:
        """Run plan from the first action, overwriting any checkpoint."""

        logger.info("Starting fresh run (%d actions)", len(plan.action_keys()))
        return self._execute(plan, after=(0, -1))

    def resume(self, plan: Plan, checkpoint: Optional[Checkpoint] = None) -> RunResult:
        """Continue after the last checkpointed action of an earlier run.

        checkpoint is the record already read at startup; when omitted it is
        loaded from the store.
        """

        cp = checkpoint if checkpoint is not None else self.store.load()
        if cp is None:
            logger.info("No checkpoint at %s; starting from the beginning", self.store.location)
            return self._execute(plan, after=(0, -1))

        if cp.plan_digest != plan.digest():
            raise CheckpointMismatch(
                f"Checkpoint {self.store.location} was written for a different plan; "
                "rerun with the same answers or start fresh"
            )
        if not 0 <= cp.stage_index < len(plan.stages) or not (
            -1 <= cp.action_index < len(plan.stages[cp.stage_index].actions)
        ):
            raise CheckpointMismatch(f"Checkpoint position {cp.position()} is outside the plan")

        if cp.outcome == OUTCOME_COMPLETED:
            logger.info("Checkpoint says the installation already completed at %s", cp.timestamp)
            return RunResult(status=RunStatus.SUCCEEDED, checkpoint_location=self.store.location)

        logger.info(
            "Resuming after stage=%s action=%s (%s, %s)",
            plan.stages[cp.stage_index].stage_id,
            cp.action_id,
            cp.outcome,
            cp.timestamp,
        )
        return self._execute(plan, after=cp.position())

    # -- execution ----------------------------------------------------------

    def _execute(self, plan: Plan, *, after: Tuple[int, int]) -> RunResult:
        digest = plan.digest()
        result = RunResult(status=RunStatus.SUCCEEDED, checkpoint_location=self.store.location)
        for _, _, a in plan.positions():
            result.states[a.key] = ActionState.PENDING

        for si, stage in enumerate(plan.stages):
            if si < after[0]:
                continue
            start = after[1] + 1 if si == after[0] else 0
            if start >= len(stage.actions):
                continue

            # Actions of this stage completed by an earlier run still count for rollback.
            done: List[Action] = list(stage.actions[:start])
            logger.info("=== Stage %d: %s ===", si, stage.stage_id)

            try:
                for first, batch in stage.batches(start):
                    outcomes = self._run_batch(batch, result)
                    for o in outcomes:
                        result.states[o.action.key] = o.state
                        if o.state == ActionState.SUCCEEDED:
                            result.executed.append(o.action.key)
                            done.append(o.action)
                        elif o.state == ActionState.SKIPPED:
                            result.skipped.append(o.action.key)

                    failed = next((o for o in outcomes if o.state == ActionState.FAILED), None)
                    if failed is not None:
                        return self._fail(stage, si, done, failed, result, digest)

                    last = batch[-1]
                    outcome = OUTCOME_SKIPPED if result.states[last.key] == ActionState.SKIPPED else OUTCOME_SUCCEEDED
                    self._save(si, first + len(batch) - 1, last.action_id, outcome, digest)
            except _Interrupted as e:
                logger.error("Interrupted during stage %s; rolling back the stage", stage.stage_id)
                for a in e.running:
                    result.states[a.key] = ActionState.FAILED
                self._compensate(done + [a for a in e.running if a.compensable], result)
                self._save(si, -1, None, OUTCOME_COMPENSATED, digest)
                result.status = RunStatus.ABORTED
                result.failure = UserAborted("Installation interrupted by user")
                result.failed_action = e.running[0].key if e.running else None
                return result

        last_si = len(plan.stages) - 1
        if last_si >= 0:
            last_stage = plan.stages[last_si]
            last_action = last_stage.actions[-1].action_id if last_stage.actions else None
            self._save(last_si, len(last_stage.actions) - 1, last_action, OUTCOME_COMPLETED, digest)
        logger.info("Run completed: %d executed, %d skipped", len(result.executed), len(result.skipped))
        return result

    def _run_batch(self, batch: Sequence[Action], result: RunResult) -> List[ActionOutcome]:
        for a in batch:
            result.states[a.key] = ActionState.RUNNING

        if len(batch) == 1:
            try:
                return [self._run_action(batch[0])]
            except KeyboardInterrupt:
                raise _Interrupted(batch) from None

        workers = min(self.max_workers, len(batch))
        logger.info("Running parallel group %s (%d actions, %d workers)", batch[0].parallel_group, len(batch), workers)
        pool = concurrent.futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix="salsa-action")
        futures = [pool.submit(self._run_action, a) for a in batch]
        try:
            concurrent.futures.wait(futures)
            # result() re-raises whatever a worker raised, KeyboardInterrupt included.
            outcomes = [f.result() for f in futures]
        except KeyboardInterrupt:
            for f in futures:
                f.cancel()
            # Rollback must not overlap members that are still running.
            pool.shutdown(wait=True)
            started = [a for a, f in zip(batch, futures) if not f.cancelled()]
            raise _Interrupted(started) from None
        pool.shutdown(wait=True)
        return outcomes

    def _run_action(self, action: Action) -> ActionOutcome:
        """Evaluate predicates and run the action; safe to call from workers."""

        try:
            if action.when is not None and not action.when.check(self.ctx):
                logger.info("Skipping %s (%s: no)", action.key, action.when.describe())
                return ActionOutcome(action, ActionState.SKIPPED)
            if action.precondition is not None and not action.precondition.check(self.ctx):
                return ActionOutcome(
                    action,
                    ActionState.FAILED,
                    PreconditionNotMet(f"{action.key}: precondition not met: {action.precondition.describe()}"),
                )
        except EnvironmentQueryFailed as e:
            return ActionOutcome(action, ActionState.FAILED, e)

        attempts = 1 + (self.retries if action.idempotent else 0)
        error: Optional[ActionExecutionFailed] = None
        for attempt in range(1, attempts + 1):
            logger.info("Running %s%s", action.key, f" (attempt {attempt}/{attempts})" if attempt > 1 else "")
            error = self._attempt(action)
            if error is None:
                return ActionOutcome(action, ActionState.SUCCEEDED)
            logger.warning("%s failed with exit %s (attempt %d/%d)", action.key, error.returncode, attempt, attempts)
        return ActionOutcome(action, ActionState.FAILED, error)

    def _attempt(self, action: Action) -> Optional[ActionExecutionFailed]:
        if action.uses_package_db:
            with self._package_lock:
                return self._exec_commands(action)
        return self._exec_commands(action)

    def _exec_commands(self, action: Action) -> Optional[ActionExecutionFailed]:
        for c in action.commands:
            r = self.runner.exec(c)
            if r.returncode != 0:
                return ActionExecutionFailed(
                    action.key,
                    argv=r.argv,
                    returncode=r.returncode,
                    stdout=r.stdout,
                    stderr=r.stderr,
                )
        return None

    # -- failure handling -----------------------------------------------------

    def _fail(
        self,
        stage: Stage,
        si: int,
        done: List[Action],
        failed: ActionOutcome,
        result: RunResult,
        digest: str,
    ) -> RunResult:
        action = failed.action
        error = failed.error
        assert error is not None
        result.failure = error
        result.failed_action = action.key
        self._log_failure(action, error)

        if isinstance(error, PreconditionNotMet):
            self._compensate(done, result)
            self._save(si, -1, None, OUTCOME_COMPENSATED, digest)
            result.status = RunStatus.ABORTED
        elif isinstance(error, ActionExecutionFailed) and action.idempotent:
            logger.error("%s still failing after %d retries; aborting", action.key, self.retries)
            result.status = RunStatus.ABORTED
        elif isinstance(error, ActionExecutionFailed) and action.compensable:
            self._compensate(done + [action], result)
            self._save(si, -1, None, OUTCOME_COMPENSATED, digest)
            result.status = RunStatus.ABORTED
        else:
            result.status = RunStatus.HALTED

        logger.error(
            "Run %s in stage %s; checkpoint: %s",
            result.status.value,
            stage.stage_id,
            self.store.location,
        )
        return result

    def _compensate(self, actions: Sequence[Action], result: RunResult) -> None:
        for a in reversed(actions):
            if not a.compensable:
                continue
            logger.info("Compensating %s", a.key)
            for c in a.compensation:
                r = self.runner.exec(c)
                if r.returncode != 0:
                    err = ActionExecutionFailed(
                        a.key, argv=r.argv, returncode=r.returncode, stdout=r.stdout, stderr=r.stderr
                    )
                    logger.error("Compensation of %s failed: %s\n%s", a.key, err, r.stderr)
                    result.compensation_errors.append(err)
            result.states[a.key] = ActionState.COMPENSATED
            result.compensated.append(a.key)

    def _log_failure(self, action: Action, error: InstallerError) -> None:
        if isinstance(error, ActionExecutionFailed):
            logger.error(
                "%s failed (exit %s): %s\n--- stdout ---\n%s\n--- stderr ---\n%s",
                action.key,
                error.returncode,
                " ".join(error.argv),
                error.stdout.rstrip(),
                error.stderr.rstrip(),
            )
        else:
            logger.error("%s failed: %s", action.key, error)

    def _save(self, si: int, ai: int, action_id: Optional[str], outcome: str, digest: str) -> None:
        self.store.save(
            Checkpoint(
                stage_index=si,
                action_index=ai,
                action_id=action_id,
                timestamp=utc_now(),
                outcome=outcome,
                plan_digest=digest,
            )
        )
