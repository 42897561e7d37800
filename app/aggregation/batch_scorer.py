"""
BatchScorer — one full sweep of scoring over the current session list.

Sessions are dispatched in list order to at most `concurrency` in-flight
backend calls (1 = strictly sequential). Each result is written to the
AssessmentTable under the session's pre-resolved key as soon as it arrives,
and a progress snapshot is emitted on a bounded cadence:

    processed n of N  →  emit when (n - 1) % every == 0  or  n == N

i.e. after items 1, 6, 11, ... with every=5, and always after the last one.

Failures of a single session are recorded and the pass moves on. The pass is
abandoned (BACKEND_UNAVAILABLE) when the backend reports it is unreachable or
`failure_threshold` consecutive sessions fail.

Cancellation is cooperative: the token is checked before every dispatch and
again when a backend call returns. Once it is observed the pass neither
writes nor emits.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional, Sequence

import structlog

from app.aggregation.connectivity import ConnectivityGate
from app.aggregation.interfaces import ScoringBackend
from app.aggregation.table import AssessmentTable
from app.core.errors import BackendUnreachable, ScoringFailed
from app.core.metrics import BATCH_PASSES, SESSIONS_SCORED
from app.schemas.behavior_session import KeyedSession
from app.schemas.pass_result import PassResult, PassStatus, ProgressSnapshot

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[ProgressSnapshot], None]


@dataclass
class _PassState:
    total: int
    processed: int = 0
    scored: int = 0
    consecutive_failures: int = 0
    failures: list[ScoringFailed] = field(default_factory=list)
    canceled: bool = False
    abandon_reason: Optional[str] = None

    @property
    def stopped(self) -> bool:
        return self.canceled or self.abandon_reason is not None


class BatchScorer:

    def __init__(
        self,
        backend: ScoringBackend,
        table: AssessmentTable,
        gate: ConnectivityGate,
        *,
        concurrency: int = 1,
        progress_every: int = 5,
        failure_threshold: int = 3,
    ) -> None:
        if concurrency < 1 or progress_every < 1 or failure_threshold < 1:
            raise ValueError("concurrency, progress_every and failure_threshold must be >= 1")
        self._backend = backend
        self._table = table
        self._gate = gate
        self._concurrency = concurrency
        self._progress_every = progress_every
        self._failure_threshold = failure_threshold

    def should_emit(self, processed: int, total: int) -> bool:
        return processed == total or (processed - 1) % self._progress_every == 0

    async def run(
        self,
        sessions: Sequence[KeyedSession],
        generation: int,
        cancel: asyncio.Event,
        on_progress: Optional[ProgressCallback] = None,
    ) -> PassResult:
        t0 = time.perf_counter_ns()
        state = _PassState(total=len(sessions))
        logger.info(
            "batch_pass_started",
            generation=generation,
            total=state.total,
            concurrency=self._concurrency,
        )

        if sessions:
            pending = iter(sessions)
            workers = min(self._concurrency, len(sessions))
            tasks = [
                asyncio.create_task(self._worker(pending, state, generation, cancel, on_progress))
                for _ in range(workers)
            ]
            try:
                await asyncio.gather(*tasks)
            except BaseException:
                # One worker blew up: stop its siblings before re-raising.
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise
        elif on_progress is not None and not cancel.is_set():
            on_progress(self._snapshot(state, generation))

        status = self._terminal_status(state)
        if status == PassStatus.BACKEND_UNAVAILABLE:
            self._gate.mark_unavailable(state.abandon_reason or "scoring backend unavailable")

        elapsed_ms = int((time.perf_counter_ns() - t0) / 1_000_000)
        BATCH_PASSES.labels(status=status.value).inc()
        logger.info(
            "batch_pass_finished",
            generation=generation,
            status=status.value,
            scored=state.scored,
            failed=len(state.failures),
            processed=state.processed,
            total=state.total,
            elapsed_ms=elapsed_ms,
        )
        return PassResult(
            generation=generation,
            status=status,
            total=state.total,
            scored=state.scored,
            failures=tuple(state.failures),
            elapsed_ms=elapsed_ms,
        )

    async def _worker(
        self,
        pending: Iterator[KeyedSession],
        state: _PassState,
        generation: int,
        cancel: asyncio.Event,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        # Workers share one iterator, so dispatch order is list order.
        for item in pending:
            if cancel.is_set():
                state.canceled = True
            if state.stopped:
                return

            try:
                assessment = await self._backend.score(item.session)
            except Exception as e:
                # A pass canceled while the call was out does not own its outcome.
                if cancel.is_set():
                    state.canceled = True
                    return
                self._record_failure(state, item, e)
                if isinstance(e, BackendUnreachable):
                    state.abandon_reason = str(e) or "scoring backend unreachable"
                elif state.consecutive_failures >= self._failure_threshold:
                    state.abandon_reason = (
                        f"{state.consecutive_failures} consecutive scoring failures"
                    )
            else:
                if cancel.is_set():
                    state.canceled = True
                    return
                if not self._table.put_batch(item.key, assessment, generation):
                    state.canceled = True
                    return
                state.scored += 1
                state.consecutive_failures = 0
                SESSIONS_SCORED.labels(outcome="scored").inc()

            if cancel.is_set():
                state.canceled = True
                return
            state.processed += 1
            if on_progress is not None and self.should_emit(state.processed, state.total):
                on_progress(self._snapshot(state, generation))

    def _record_failure(self, state: _PassState, item: KeyedSession, error: Exception) -> None:
        failure = ScoringFailed(item.key, str(error) or error.__class__.__name__)
        state.failures.append(failure)
        state.consecutive_failures += 1
        SESSIONS_SCORED.labels(outcome="failed").inc()
        logger.warning(
            "session_scoring_failed",
            session_key=item.key,
            error=failure.reason,
            consecutive_failures=state.consecutive_failures,
        )

    def _snapshot(self, state: _PassState, generation: int) -> ProgressSnapshot:
        return ProgressSnapshot(
            generation=generation,
            processed=state.processed,
            scored=state.scored,
            failed=len(state.failures),
            total=state.total,
            entries=self._table.snapshot(),
        )

    @staticmethod
    def _terminal_status(state: _PassState) -> PassStatus:
        if state.canceled:
            return PassStatus.CANCELED
        if state.abandon_reason is not None:
            return PassStatus.BACKEND_UNAVAILABLE
        if state.failures:
            return PassStatus.COMPLETED_WITH_FAILURES
        return PassStatus.COMPLETED
