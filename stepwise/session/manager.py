"""Session lifecycle: create, execute, resume, retry, cancel."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from stepwise.errors import (
    ConcurrentUpdateError,
    InputValidationError,
    InvalidSessionStateError,
    SessionNotFoundError,
)
from stepwise.executor.context import ExecutionContext, context_key
from stepwise.executor.engine import ExecuteOptions, Executor, resume_options
from stepwise.executor.results import ExecutionResult, StepResult, UserInputResult
from stepwise.inputs.validation import validate_values
from stepwise.planner.models import ExecutionPlan, split_plan_id, utc_now
from stepwise.session.models import (
    CANCELLED_ERROR,
    ExecutionSession,
    Platform,
    SessionStatusInfo,
    new_session_id,
)
from stepwise.session.storage import SessionStorage
from stepwise.utils.logging import bind_session, get_logger

log = get_logger(__name__)

_CANCELLABLE = ("pending", "running", "waiting_input")


class SessionManager:
    """Drives sessions through their state machine.

    ``pending -> running -> completed | failed | waiting_input``;
    ``waiting_input -> running`` on resume; any non-terminal state can be
    cancelled (which marks it ``failed``); only ``failed`` sessions can be
    retried, always into a fresh child session.
    """

    def __init__(self, executor: Executor, storage: SessionStorage) -> None:
        self._executor = executor
        self._storage = storage

    async def create_session(self, plan: ExecutionPlan, platform: Platform = "cli") -> ExecutionSession:
        base_plan_id, version = split_plan_id(plan.id)
        session = ExecutionSession(
            id=new_session_id(),
            plan_id=plan.id,
            base_plan_id=base_plan_id,
            plan_version=version,
            plan=plan,
            platform=platform,
        )
        session = await self._storage.save_session(session)
        log.info("session_created", session_id=session.id, plan_id=plan.id, platform=platform)
        return session

    async def execute_session(self, session_id: str) -> ExecutionResult:
        with bind_session(session_id):
            session = await self._require(session_id)
            if session.status != "pending":
                raise InvalidSessionStateError(
                    session_id, session.status, "execute", "Session must be pending."
                )
            session = await self._storage.update_session(
                session_id, expected_version=session.version, status="running"
            )
            log.info("session_executing", plan_id=session.plan_id, start_from=session.current_step_id)
            options = resume_options(session.step_results, session.current_step_id)
            return await self._run(session, options)

    async def resume_session(
        self, session_id: str, user_input: dict[str, Any], skipped: bool = False
    ) -> ExecutionResult:
        """Answer the pending input request and continue the run.

        Raises :class:`InputValidationError` (leaving the session waiting)
        when ``user_input`` does not satisfy the pending schema.
        """
        with bind_session(session_id):
            session = await self._require(session_id)
            if session.status != "waiting_input" or session.pending_input is None:
                raise InvalidSessionStateError(
                    session_id,
                    session.status,
                    "resume",
                    "Session must be waiting for input.",
                )
            pending = session.pending_input
            if skipped and not pending.schema.skippable:
                raise InputValidationError([f"Step {pending.step_id} cannot be skipped"])
            values: dict[str, Any] = {}
            if not skipped:
                values, errors = validate_values(pending.schema, user_input)
                if errors:
                    raise InputValidationError(errors)

            answered = UserInputResult(
                step_id=pending.step_id, success=True, values=values, skipped=skipped
            )
            step_results = [r for r in session.step_results if r.step_id != pending.step_id]
            step_results.append(answered)
            context = dict(session.context)
            context[context_key(pending.step_id)] = values
            next_step = self._next_step_id(session.plan, pending.step_id)

            session = await self._storage.update_session(
                session_id,
                expected_version=session.version,
                status="running",
                pending_input=None,
                step_results=step_results,
                context=context,
                current_step_id=next_step,
            )
            log.info("session_resumed", step_id=pending.step_id, next_step=next_step)
            options = resume_options(step_results, next_step)
            return await self._run(session, options)

    async def retry_session(self, session_id: str, from_step: int | None = None) -> ExecutionSession:
        """Create a pending child of a failed session.

        With ``from_step`` the successful results (and context entries) of
        every step before it are carried over so execution picks up there.
        """
        with bind_session(session_id):
            failed = await self._require(session_id)
            if failed.status != "failed":
                raise InvalidSessionStateError(
                    session_id, failed.status, "retry", "Only failed sessions can be retried."
                )

            step_results: list[StepResult] = []
            context: dict[str, Any] = {}
            current_step_id = 0
            if from_step is not None and from_step > 0:
                step_results = [r for r in failed.step_results if r.success and r.step_id < from_step]
                keep = {context_key(r.step_id) for r in step_results}
                context = {k: v for k, v in failed.context.items() if k in keep}
                current_step_id = from_step

            child = ExecutionSession(
                id=new_session_id(),
                plan_id=failed.plan_id,
                base_plan_id=failed.base_plan_id,
                plan_version=failed.plan_version,
                plan=failed.plan,
                current_step_id=current_step_id,
                step_results=step_results,
                context=context,
                parent_session_id=failed.id,
                retry_count=failed.retry_count + 1,
                platform=failed.platform,
            )
            child = await self._storage.save_session(child)
            log.info(
                "session_retry_created",
                retry_session_id=child.id,
                from_step=from_step,
                preserved=len(step_results),
                retry_count=child.retry_count,
            )
            return child

    async def cancel_session(self, session_id: str) -> ExecutionSession:
        with bind_session(session_id):
            session = await self._require(session_id)
            if session.status not in _CANCELLABLE:
                raise InvalidSessionStateError(
                    session_id,
                    session.status,
                    "cancel",
                    "Only pending, running or waiting sessions can be cancelled.",
                )
            now = utc_now()
            result = ExecutionResult(
                plan_id=session.plan_id,
                steps=list(session.step_results),
                success=False,
                error=CANCELLED_ERROR,
                started_at=session.created_at,
                completed_at=now,
            )
            session = await self._storage.update_session(
                session_id,
                status="failed",
                pending_input=None,
                result=result,
                completed_at=now,
            )
            log.info("session_cancelled")
            return session

    async def get_session(self, session_id: str) -> ExecutionSession | None:
        return await self._storage.load_session(session_id)

    async def get_session_status(self, session_id: str) -> SessionStatusInfo:
        return SessionStatusInfo.from_session(await self._require(session_id))

    async def list_sessions(self, **filters: Any) -> list[ExecutionSession]:
        return await self._storage.list_sessions(**filters)

    async def delete_session(self, session_id: str) -> bool:
        return await self._storage.delete_session(session_id)

    # --- internals ---

    async def _require(self, session_id: str) -> ExecutionSession:
        session = await self._storage.load_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def _run(self, session: ExecutionSession, options: ExecuteOptions) -> ExecutionResult:
        options.pause_on_input = True
        options.is_cancelled = lambda: self._is_cancelled(session.id)
        started_at = utc_now()
        try:
            result = await self._executor.execute(session.plan, options)
        except Exception as e:
            log.exception("session_execution_error")
            result = ExecutionResult(
                plan_id=session.plan_id,
                steps=list(options.previous_results),
                success=False,
                error=str(e) or type(e).__name__,
                started_at=started_at,
                completed_at=utc_now(),
            )
        return await self._finalize(session.id, result)

    async def _is_cancelled(self, session_id: str) -> bool:
        current = await self._storage.load_session(session_id)
        return current is None or current.is_cancelled

    async def _finalize(self, session_id: str, result: ExecutionResult) -> ExecutionResult:
        context = ExecutionContext.from_step_results(result.steps).snapshot()
        changes: dict[str, Any]
        if result.waiting_for_input is not None:
            changes = dict(
                status="waiting_input",
                pending_input=result.waiting_for_input,
                current_step_id=result.waiting_for_input.step_id,
                step_results=result.steps,
                context=context,
            )
        else:
            last_step = result.steps[-1].step_id if result.steps else 0
            changes = dict(
                status="completed" if result.success else "failed",
                pending_input=None,
                current_step_id=last_step,
                step_results=result.steps,
                context=context,
                result=result,
                completed_at=result.completed_at,
            )

        for _ in range(2):
            current = await self._require(session_id)
            if current.is_cancelled:
                return await self._keep_committed(current, result)
            try:
                await self._storage.update_session(
                    session_id, expected_version=current.version, **changes
                )
                break
            except ConcurrentUpdateError:
                log.warning("session_update_conflict")
        else:
            raise ConcurrentUpdateError(session_id, current.version)

        log.info(
            "session_finished" if result.waiting_for_input is None else "session_waiting_input",
            status=changes["status"],
            steps=len(result.steps),
            error=result.error,
        )
        return result

    async def _keep_committed(self, session: ExecutionSession, result: ExecutionResult) -> ExecutionResult:
        """Store the steps that finished before a cancel landed.

        The session stays ``failed`` with the cancellation error; only its
        results and context are filled in so a retry can start from them.
        """
        kept = [r for r in result.steps if r.success]
        cancelled = replace(
            session.result or result,
            steps=kept,
            success=False,
            error=CANCELLED_ERROR,
            waiting_for_input=None,
        )
        await self._storage.update_session(
            session.id,
            expected_version=session.version,
            step_results=kept,
            context=ExecutionContext.from_step_results(kept).snapshot(),
            current_step_id=kept[-1].step_id if kept else session.current_step_id,
            result=cancelled,
        )
        log.info("session_cancelled_during_execution", committed=len(kept))
        return cancelled

    @staticmethod
    def _next_step_id(plan: ExecutionPlan, step_id: int) -> int:
        later = [s.step_id for s in plan.steps if s.step_id > step_id]
        return min(later) if later else step_id + 1
