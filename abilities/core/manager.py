"""Execution lifecycle manager: the single active-execution slot."""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from typing import TYPE_CHECKING, Any, Mapping

from abilities.core.errors import LifecycleError
from abilities.core.execution import AbilityExecution, ExecutionStatus, ExecutorContext
from abilities.core.executor import StepExecutor, create_execution, run_execution
from abilities.core.runner import kill_process
from abilities.utils import get_logger, now_utc

if TYPE_CHECKING:
    from abilities.definitions.models import AbilityDefinition

logger = get_logger(__name__)


class ExecutionManager:
    """Own the one running execution and a bounded history of past ones.

    At most one execution is running at a time. The active execution is
    visible while its steps run, so the enforcement gate and the context
    injector can observe its current step.

    Example:
        >>> manager = ExecutionManager()
        >>> execution = await manager.start(ability, {"env": "prod"}, ctx)
    """

    def __init__(
        self,
        max_history: int = 50,
        retention_seconds: float = 3600,
        cleanup_interval_seconds: float = 300,
        kill_on_cancel: bool = True,
        step_executor: StepExecutor | None = None,
    ):
        """Initialize the manager.

        Args:
            max_history: Maximum number of finished executions kept
            retention_seconds: Age after which finished executions are dropped
            cleanup_interval_seconds: Period of the background cleanup loop
            kill_on_cancel: Kill the in-flight script process on cancel
            step_executor: Executor used for single steps
        """
        self.max_history = max_history
        self.retention_seconds = retention_seconds
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self.kill_on_cancel = kill_on_cancel
        self.step_executor = step_executor or StepExecutor()

        self._lock = asyncio.Lock()
        self._active: AbilityExecution | None = None
        self._history: OrderedDict[str, AbilityExecution] = OrderedDict()
        self._cleanup_task: asyncio.Task | None = None

    async def start(
        self,
        ability: "AbilityDefinition",
        inputs: Mapping[str, Any] | None,
        ctx: ExecutorContext,
        session_id: str | None = None,
    ) -> AbilityExecution:
        """Start an execution and run it to a terminal status.

        Raises:
            LifecycleError: If another execution is still running
        """
        async with self._lock:
            if self._active is not None and self._active.is_running:
                raise LifecycleError(f"Already executing ability: {self._active.ability.name}")

            execution = create_execution(ability, inputs, session_id)
            self._history[execution.id] = execution
            if execution.is_running:
                self._active = execution

        logger.info(
            "Execution started",
            extra={"ability": ability.name, "execution_id": execution.id, "session_id": session_id},
        )

        try:
            await run_execution(execution, ctx, self.step_executor)
        finally:
            if self._active is execution:
                self._active = None

        return execution

    def get_active(self) -> AbilityExecution | None:
        """Return the running execution, if any."""
        if self._active is not None and self._active.is_running:
            return self._active
        return None

    def get(self, execution_id: str) -> AbilityExecution | None:
        return self._history.get(execution_id)

    @property
    def history(self) -> list[AbilityExecution]:
        """Known executions, oldest first."""
        return list(self._history.values())

    async def cancel(self, execution_id: str | None = None) -> bool:
        """Cancel the active execution.

        Args:
            execution_id: Only cancel when the active execution has this id

        Returns:
            True if an execution was cancelled
        """
        async with self._lock:
            active = self.get_active()
            if active is None:
                return False
            if execution_id is not None and active.id != execution_id:
                return False

            process = active.process
            active.finish(ExecutionStatus.CANCELLED, "Cancelled by user")
            self._active = None

        if self.kill_on_cancel and process is not None:
            kill_process(process)

        logger.info(
            "Execution cancelled",
            extra={"ability": active.ability.name, "execution_id": active.id},
        )
        return True

    def cleanup(self) -> int:
        """Drop finished executions past the retention age or the history cap.

        Returns:
            Number of executions removed
        """
        now = now_utc()
        removed = 0

        for execution_id, execution in list(self._history.items()):
            if execution.is_running or execution.completed_at is None:
                continue
            if (now - execution.completed_at).total_seconds() > self.retention_seconds:
                del self._history[execution_id]
                removed += 1

        finished = [e for e in self._history.values() if not e.is_running]
        overflow = len(self._history) - self.max_history
        for execution in finished[:max(overflow, 0)]:
            del self._history[execution.id]
            removed += 1

        if removed:
            logger.debug("Cleaned up executions", extra={"removed": removed})
        return removed

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval_seconds)
            self.cleanup()

    def start_cleanup_loop(self) -> None:
        """Run ``cleanup`` periodically in the background."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def stop_cleanup_loop(self) -> None:
        if self._cleanup_task is None:
            return
        self._cleanup_task.cancel()
        try:
            await self._cleanup_task
        except asyncio.CancelledError:
            pass
        self._cleanup_task = None

    async def on_session_deleted(self, session_id: str) -> None:
        """Cancel and forget everything that belongs to a session."""
        active = self.get_active()
        if active is not None and active.session_id == session_id:
            await self.cancel(active.id)

        for execution_id, execution in list(self._history.items()):
            if execution.session_id == session_id and not execution.is_running:
                del self._history[execution_id]

    async def reset(self) -> None:
        """Cancel the active execution and clear all history."""
        await self.cancel()
        self._history.clear()
