"""Asyncio-based scheduler that monitors autopay rules.

Each active rule gets one asyncio task that sleeps for the tick interval,
evaluates the rule's condition and runs the execution pipeline when it is
satisfied. Per-rule state machine::

    STOPPED -> MONITORING -> EVALUATING -> TRIGGERING -> MONITORING
                                        \\-> MONITORING

Ticks of one rule are serialized by a per-rule lock; a tick that finds the
lock held (e.g. by a manual trigger) is skipped, not queued. Stopping a rule
cancels its task unless it is TRIGGERING: an execution past its commit
point always runs to completion and only the next tick is suppressed.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from autopay.application.condition_evaluator import ConditionEvaluator, EvaluationContext
from autopay.application.execution_pipeline import ExecutionPipeline
from autopay.core.domain.execution import ERROR_RULE_NOT_FOUND, Execution
from autopay.core.domain.rule import AutopayRule
from autopay.core.interfaces.clock import ClockProtocol
from autopay.core.interfaces.rule_store import RuleStoreProtocol
from autopay.core.utils.time import SystemClock

logger = structlog.get_logger(__name__)

DEFAULT_TICK_INTERVAL_SECONDS = 60.0


class MonitorState(str, Enum):
    """Monitoring state of a single rule."""

    STOPPED = "stopped"
    MONITORING = "monitoring"
    EVALUATING = "evaluating"
    TRIGGERING = "triggering"


@dataclass
class MonitorHandle:
    """Cancellation handle for one rule's monitoring task.

    Attributes:
        rule_id: The monitored rule.
        task: The asyncio task running the tick loop.
        state: Current state of the rule's state machine.
        stopping: Set once the timer is disarmed; no further tick starts.
        ticks: Ticks that reached evaluation.
        skipped: Ticks skipped because the rule was busy.
    """

    rule_id: str
    task: asyncio.Task[None] | None = None
    state: MonitorState = MonitorState.MONITORING
    stopping: bool = False
    ticks: int = 0
    skipped: int = 0

    def cancel(self) -> None:
        """Disarm the timer, abandoning the current tick unless it is triggering."""
        self.stopping = True
        if self.task and not self.task.done() and self.state is not MonitorState.TRIGGERING:
            self.task.cancel()


class RuleScheduler:
    """Owns one monitoring task per active rule.

    The scheduler only keeps rule ids; each tick reads the rule fresh from
    the rule store, and all rule mutation goes through the store.
    """

    def __init__(
        self,
        rule_store: RuleStoreProtocol,
        evaluator: ConditionEvaluator,
        pipeline: ExecutionPipeline,
        *,
        clock: ClockProtocol | None = None,
        tick_interval_seconds: float = DEFAULT_TICK_INTERVAL_SECONDS,
        on_execution: Callable[[Execution], Awaitable[None]] | None = None,
    ) -> None:
        if tick_interval_seconds <= 0:
            raise ValueError("Tick interval must be positive")
        self._rule_store = rule_store
        self._evaluator = evaluator
        self._pipeline = pipeline
        self._clock = clock or SystemClock()
        self._tick_interval = tick_interval_seconds
        self._on_execution = on_execution
        self._handles: dict[str, MonitorHandle] = {}
        self._guards: dict[str, asyncio.Lock] = {}
        self._draining: set[asyncio.Task[Any]] = set()
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the scheduler accepts rules for monitoring."""
        return self._running

    @property
    def tick_interval(self) -> float:
        return self._tick_interval

    def set_execution_callback(
        self, callback: Callable[[Execution], Awaitable[None]] | None
    ) -> None:
        """Inject the callback receiving every execution outcome."""
        self._on_execution = callback

    async def start(self) -> None:
        """Start accepting rules for monitoring."""
        if self._running:
            return
        self._running = True
        logger.info("scheduler.started", tick_interval_s=self._tick_interval)

    async def stop(self) -> None:
        """Disarm every timer and wait for in-flight executions to finish."""
        self._running = False
        handles = list(self._handles.values())
        self._handles.clear()
        for handle in handles:
            handle.cancel()
            self._evaluator.unwatch(handle.rule_id)
        tasks = [h.task for h in handles if h.task]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.drain()
        self._guards.clear()
        logger.info("scheduler.stopped", rules=len(handles))

    async def start_monitoring(self, rule: AutopayRule) -> bool:
        """Arm a fresh timer for a rule, replacing any existing one.

        Returns:
            True if the rule is now monitored.
        """
        if not self._running:
            logger.warning("scheduler.not_running", rule_id=rule.rule_id)
            return False
        if not rule.active:
            logger.info("scheduler.rule_inactive", rule_id=rule.rule_id)
            return False

        existing = self._handles.pop(rule.rule_id, None)
        if existing:
            self._retire(existing)

        self._evaluator.watch(rule)
        handle = MonitorHandle(rule_id=rule.rule_id)
        handle.task = asyncio.create_task(
            self._run_rule_loop(handle), name=f"autopay-rule-{rule.rule_id}"
        )
        self._handles[rule.rule_id] = handle
        logger.info(
            "scheduler.monitoring_started",
            rule_id=rule.rule_id,
            condition=rule.condition.describe(),
        )
        return True

    async def stop_monitoring(self, rule_id: str) -> bool:
        """Disarm a rule's timer.

        An in-flight execution keeps running; use ``drain`` to wait for it.

        Returns:
            True if the rule was being monitored.
        """
        handle = self._handles.pop(rule_id, None)
        if handle is None:
            return False
        self._retire(handle)
        self._evaluator.unwatch(rule_id)
        logger.info("scheduler.monitoring_stopped", rule_id=rule_id)
        return True

    async def drain(self) -> None:
        """Wait until retired tasks and manual triggers (with their executions) are done."""
        while pending := [task for task in self._draining if not task.done()]:
            await asyncio.gather(*pending, return_exceptions=True)

    async def trigger_now(self, rule_id: str) -> Execution:
        """Execute a rule immediately, outside its tick cadence.

        Waits for any running tick of the same rule to finish first. Once
        started, the trigger holds the rule's guard until its execution is
        finished, even if the caller stops waiting; ``stop`` and ``drain``
        wait for it.
        """
        task = asyncio.create_task(
            self._run_trigger(rule_id), name=f"autopay-trigger-{rule_id}"
        )
        self._draining.add(task)
        task.add_done_callback(self._draining.discard)
        return await asyncio.shield(task)

    def forget(self, rule_id: str) -> None:
        """Drop per-rule bookkeeping of a deleted rule."""
        guard = self._guards.get(rule_id)
        if guard is not None and not guard.locked():
            del self._guards[rule_id]

    def is_monitoring(self, rule_id: str) -> bool:
        return rule_id in self._handles

    def state_of(self, rule_id: str) -> MonitorState:
        handle = self._handles.get(rule_id)
        return handle.state if handle else MonitorState.STOPPED

    def handle_for(self, rule_id: str) -> MonitorHandle | None:
        return self._handles.get(rule_id)

    def monitored_rule_ids(self) -> list[str]:
        return list(self._handles)

    def _guard(self, rule_id: str) -> asyncio.Lock:
        guard = self._guards.get(rule_id)
        if guard is None:
            guard = self._guards[rule_id] = asyncio.Lock()
        return guard

    async def _run_trigger(self, rule_id: str) -> Execution:
        async with self._guard(rule_id):
            rule = await self._rule_store.get(rule_id)
            if rule is None:
                return Execution.failure(rule_id, ERROR_RULE_NOT_FOUND, self._clock.now())
            logger.info("scheduler.manual_trigger", rule_id=rule_id)
            execution = await self._pipeline.execute(rule)
        await self._report(execution)
        return execution

    def _retire(self, handle: MonitorHandle) -> None:
        handle.cancel()
        task = handle.task
        if task and not task.done():
            self._draining.add(task)
            task.add_done_callback(self._draining.discard)

    async def _run_rule_loop(self, handle: MonitorHandle) -> None:
        """Run the tick loop for a single rule."""
        try:
            while self._running and not handle.stopping:
                await asyncio.sleep(self._tick_interval)
                if not self._running or handle.stopping:
                    break
                await self._tick(handle)
        except asyncio.CancelledError:
            pass
        except Exception as exc:
            logger.error("scheduler.loop_error", rule_id=handle.rule_id, error=str(exc))
        finally:
            handle.state = MonitorState.STOPPED
            if self._handles.get(handle.rule_id) is handle:
                del self._handles[handle.rule_id]
                self._evaluator.unwatch(handle.rule_id)

    async def _tick(self, handle: MonitorHandle) -> None:
        """Evaluate the rule once and execute it if its condition holds."""
        guard = self._guard(handle.rule_id)
        if guard.locked():
            handle.skipped += 1
            logger.info("scheduler.tick_skipped", rule_id=handle.rule_id, reason="busy")
            return

        async with guard:
            handle.ticks += 1
            handle.state = MonitorState.EVALUATING
            try:
                rule = await self._rule_store.get(handle.rule_id)
                if rule is None or not rule.active:
                    logger.info("scheduler.rule_unavailable", rule_id=handle.rule_id)
                    handle.stopping = True
                    return

                context = EvaluationContext.for_rule(rule, self._clock.now())
                satisfied = await self._evaluator.evaluate(rule.condition, context)
                if not satisfied or handle.stopping:
                    return

                handle.state = MonitorState.TRIGGERING
                logger.info("scheduler.condition_met", rule_id=rule.rule_id)
                execution = await self._pipeline.execute(rule)
                await self._report(execution)
            except Exception as exc:
                logger.error("scheduler.tick_failed", rule_id=handle.rule_id, error=str(exc))
            finally:
                handle.state = MonitorState.MONITORING

    async def _report(self, execution: Execution) -> None:
        if execution.success:
            logger.info(
                "scheduler.execution_succeeded",
                rule_id=execution.rule_id,
                transaction_id=execution.transaction_id,
            )
        else:
            logger.info(
                "scheduler.execution_failed",
                rule_id=execution.rule_id,
                transaction_id=execution.transaction_id,
                error=execution.error,
            )
        if self._on_execution is None:
            return
        try:
            await self._on_execution(execution)
        except Exception as exc:
            logger.warning("scheduler.execution_callback_failed", error=str(exc))
