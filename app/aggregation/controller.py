"""
AggregationController — lifecycle owner of the aggregation engine.

  start()    → test connectivity, subscribe the live overlay, load sessions,
               reset the table, launch a batch pass
  refresh()  → re-test connectivity; if reachable, re-score every session
  shutdown() → cancel the in-flight pass and the overlay, await both

At most one batch pass runs at a time. A start()/refresh() that arrives
while a pass is in flight cancels it and launches a new one: the old pass
stops at its next checkpoint, results it already wrote are kept, and any
late write it attempts is rejected by the table's generation guard.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Mapping, Optional, Union

import structlog

from app.aggregation.batch_scorer import BatchScorer
from app.aggregation.connectivity import ConnectivityGate
from app.aggregation.interfaces import LiveRiskFeed, ScoringBackend, SessionStore
from app.aggregation.live_overlay import LiveOverlayMerger
from app.aggregation.table import AssessmentTable
from app.core.errors import BackendUnavailable, InitializationError
from app.core.metrics import BATCH_PASSES
from app.schemas.behavior_session import KeyedSession, SessionKey, key_sessions
from app.schemas.pass_result import PassResult, PassStatus, ProgressSnapshot
from app.schemas.risk_assessment import RiskAssessment

logger = structlog.get_logger(__name__)

EngineEvent = Union[ProgressSnapshot, PassResult]
Listener = Callable[[EngineEvent], None]
PassHook = Callable[[PassResult], Awaitable[None]]


class EngineState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    SCORING = "scoring"
    SHUT_DOWN = "shut_down"


@dataclass
class _ActivePass:
    generation: int
    cancel: asyncio.Event
    task: asyncio.Task


class AggregationController:

    def __init__(
        self,
        store: SessionStore,
        backend: ScoringBackend,
        feed: LiveRiskFeed,
        *,
        concurrency: int = 1,
        progress_every: int = 5,
        failure_threshold: int = 3,
    ) -> None:
        self._store = store
        self._backend = backend
        self._feed = feed

        self.table = AssessmentTable()
        self.gate = ConnectivityGate(backend)
        self._scorer = BatchScorer(
            backend,
            self.table,
            self.gate,
            concurrency=concurrency,
            progress_every=progress_every,
            failure_threshold=failure_threshold,
        )
        self._overlay = LiveOverlayMerger(self.table, self._latest_key)

        self._sessions: list[KeyedSession] = []
        self._loaded = False
        self._state = EngineState.UNLOADED
        self._active: Optional[_ActivePass] = None
        self._lock = asyncio.Lock()

        self._listeners: list[Listener] = []
        self._pass_hooks: list[PassHook] = []
        self.progress: Optional[ProgressSnapshot] = None
        self.last_result: Optional[PassResult] = None
        self.last_error: Optional[str] = None

    # --------------------------------------------------------
    # Observables
    # --------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def sessions(self) -> list[KeyedSession]:
        return list(self._sessions)

    @property
    def is_backend_available(self) -> bool:
        return self.gate.is_available

    @property
    def overlay(self) -> LiveOverlayMerger:
        return self._overlay

    @property
    def is_scoring(self) -> bool:
        return self._active is not None and not self._active.task.done()

    def snapshot(self) -> Mapping[SessionKey, RiskAssessment]:
        return self.table.snapshot()

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def add_pass_hook(self, hook: PassHook) -> None:
        """Async callback awaited with every terminal PassResult."""
        self._pass_hooks.append(hook)

    async def wait_for_pass(self) -> Optional[PassResult]:
        """Result of the in-flight pass (or the last finished one)."""
        active = self._active
        if active is None:
            return self.last_result
        return await asyncio.shield(active.task)

    # --------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------

    async def start(self) -> int:
        """Load sessions and launch a batch pass. Returns the pass generation."""
        async with self._lock:
            self._ensure_open()
            await self._cancel_active()
            self._state = EngineState.LOADING
            logger.info("engine_starting")

            await self.gate.test()
            try:
                await self._overlay.start(self._feed)
                loaded = await self._store.load_all()
            except Exception as e:
                self._state = EngineState.READY if self._loaded else EngineState.UNLOADED
                self.last_error = f"Error loading data: {e}"
                logger.error("engine_start_failed", error=str(e), state=self._state.value)
                if isinstance(e, InitializationError):
                    raise
                raise InitializationError(self.last_error) from e

            # Store returns oldest first; the engine works newest first.
            self._sessions = key_sessions(list(reversed(loaded)))
            self._loaded = True
            self.last_error = None
            self.table.reset()
            logger.info("sessions_loaded", count=len(self._sessions))
            return self._launch_pass()

    async def refresh(self) -> int:
        """
        Re-validate the backend and re-score every session.
        Raises BackendUnavailable (no scoring performed) if the test fails.
        """
        async with self._lock:
            self._ensure_open()
            if not self._loaded:
                raise InitializationError("Sessions are not loaded; start the engine first")

            if not await self.gate.test():
                # Generation 0: no pass was launched.
                result = PassResult(
                    generation=0,
                    status=PassStatus.BACKEND_UNAVAILABLE,
                    total=len(self._sessions),
                )
                BATCH_PASSES.labels(status=result.status.value).inc()
                logger.warning("refresh_skipped_backend_unavailable")
                await self._publish_result(result)
                raise BackendUnavailable("Scoring backend is not available")

            await self._cancel_active()
            logger.info("refresh_started", sessions=len(self._sessions))
            return self._launch_pass()

    async def shutdown(self) -> None:
        """Idempotent. After it returns no further table writes happen."""
        async with self._lock:
            if self._state == EngineState.SHUT_DOWN:
                return
            await self._cancel_active()
            await self._overlay.stop()
            for resource in (self._backend, self._store, self._feed):
                await _close_quietly(resource)
            self._state = EngineState.SHUT_DOWN
            logger.info("engine_shut_down")

    # --------------------------------------------------------
    # Internals
    # --------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._state == EngineState.SHUT_DOWN:
            raise InitializationError("Engine has been shut down")

    def _latest_key(self) -> Optional[SessionKey]:
        return self._sessions[0].key if self._sessions else None

    def _launch_pass(self) -> int:
        generation = self.table.begin_generation()
        cancel = asyncio.Event()
        task = asyncio.create_task(
            self._run_pass(list(self._sessions), generation, cancel),
            name=f"batch-pass-{generation}",
        )
        self._active = _ActivePass(generation=generation, cancel=cancel, task=task)
        self._state = EngineState.SCORING
        return generation

    async def _cancel_active(self) -> None:
        active = self._active
        if active is None or active.task.done():
            return
        logger.info("batch_pass_superseded", generation=active.generation)
        active.cancel.set()
        # Bounded by one in-flight backend call per worker.
        await active.task

    async def _run_pass(
        self,
        sessions: list[KeyedSession],
        generation: int,
        cancel: asyncio.Event,
    ) -> PassResult:
        try:
            result = await self._scorer.run(sessions, generation, cancel, on_progress=self._on_progress)
        except Exception as e:
            logger.exception("batch_pass_errored", generation=generation, error=str(e))
            result = PassResult(generation=generation, status=PassStatus.ERRORED, total=len(sessions))
            BATCH_PASSES.labels(status=result.status.value).inc()

        if self._active is not None and self._active.generation == generation:
            self._state = EngineState.READY
        await self._publish_result(result)
        return result

    async def _publish_result(self, result: PassResult) -> None:
        self.last_result = result
        self._notify(result)
        for hook in self._pass_hooks:
            try:
                await hook(result)
            except Exception as e:
                logger.warning("pass_hook_failed", error=str(e), generation=result.generation)

    def _on_progress(self, snapshot: ProgressSnapshot) -> None:
        self.progress = snapshot
        self._notify(snapshot)

    def _notify(self, event: EngineEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning("engine_listener_failed", error=str(e), event_type=type(event).__name__)


async def _close_quietly(resource: object) -> None:
    aclose = getattr(resource, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as e:
        logger.warning("resource_close_failed", resource=type(resource).__name__, error=str(e))
