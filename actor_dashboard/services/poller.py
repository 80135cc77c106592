from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set

from actor_dashboard.core.config import get_settings
from actor_dashboard.core.status import ExecutionStatus, next_status, normalize_remote_status

logger = logging.getLogger(__name__)

StatusFetch = Callable[[str], Awaitable[Mapping[str, Any]]]
ResultsFetch = Callable[[str], Awaitable[List[Any]]]


class ExecutionPoller:
    """
    Polls one execution at a time until it reaches SUCCEEDED or FAILED.

    - READY until start(); RUNNING right after.
    - A status fetch is issued every interval on a wall-clock schedule, so a slow
      fetch never delays the next tick.
    - Nothing is fetched once the state is terminal.
    - start() on a new target (or cancel()) stops the old task; late responses for
      a superseded target are dropped, as are responses older than the last one applied.
    - A failed fetch (status or results) is logged and ignored until the next tick. No backoff.

    progress is a display-only number: it creeps up while RUNNING, never passes
    the ceiling, and jumps to 100 on SUCCEEDED.
    """

    def __init__(
        self,
        fetch_status: StatusFetch,
        fetch_results: ResultsFetch | None = None,
        *,
        interval_s: float | None = None,
        progress_tick_s: float | None = None,
        progress_ceiling: float | None = None,
        rng: Callable[[], float] = random.random,
        on_update: Callable[["ExecutionPoller"], None] | None = None,
    ) -> None:
        s = get_settings()
        self._fetch_status = fetch_status
        self._fetch_results = fetch_results
        self.interval_s = interval_s if interval_s is not None else s.POLL_INTERVAL_MS / 1000
        self.progress_tick_s = progress_tick_s if progress_tick_s is not None else s.PROGRESS_TICK_MS / 1000
        self.progress_ceiling = progress_ceiling if progress_ceiling is not None else s.PROGRESS_CEILING
        self._rng = rng
        self._on_update = on_update

        self.execution_id: str | None = None
        self.state: ExecutionStatus = ExecutionStatus.READY
        self.stats: Dict[str, Any] | None = None
        self.results: List[Any] | None = None
        self.progress: float = 0.0
        self.status_fetches = 0
        self.results_fetches = 0

        self._generation = 0
        self._finishing = False
        self._issued = 0
        self._applied = 0
        self._task: asyncio.Task | None = None
        self._progress_task: asyncio.Task | None = None
        self._inflight: Set[asyncio.Task] = set()
        self._done: asyncio.Event | None = None

    # ---------------------------------------------------------------- control

    def start(self, execution_id: str) -> None:
        self.cancel()
        self.execution_id = execution_id
        self.state = ExecutionStatus.RUNNING
        self.stats = None
        self.results = None
        self.progress = 0.0
        self._finishing = False
        self._issued = 0
        self._applied = 0
        self._done = asyncio.Event()

        gen = self._generation
        self._task = asyncio.create_task(self._poll_loop(gen, execution_id))
        self._progress_task = asyncio.create_task(self._progress_loop(gen))

    def cancel(self) -> None:
        self._generation += 1
        self._stop_tasks()
        for t in list(self._inflight):
            t.cancel()
        self._inflight.clear()
        if self.execution_id is not None and not self.state.is_terminal:
            self.state = ExecutionStatus.READY
        self.execution_id = None
        if self._done is not None:
            self._done.set()

    async def wait(self, timeout: float | None = None) -> ExecutionStatus:
        if self._done is None:
            return self.state
        await asyncio.wait_for(self._done.wait(), timeout)
        return self.state

    def snapshot(self) -> Dict[str, Any]:
        return {
            "executionId": self.execution_id,
            "status": self.state.value,
            "stats": self.stats,
            "results": self.results,
            "progress": round(self.progress, 1),
        }

    # --------------------------------------------------------------- internals

    def _is_current(self, gen: int) -> bool:
        return gen == self._generation

    def _is_active(self, gen: int) -> bool:
        return self._is_current(gen) and not self.state.is_terminal

    def _should_fetch(self, gen: int) -> bool:
        return self._is_active(gen) and not self._finishing

    def _stop_tasks(self) -> None:
        current = asyncio.current_task()
        for t in (self._task, self._progress_task):
            if t is not None and t is not current and not t.done():
                t.cancel()
        self._task = None
        self._progress_task = None

    async def _poll_loop(self, gen: int, execution_id: str) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        # Stays alive while a results fetch is pending so a failed fetch is retried.
        while self._is_active(gen):
            if not self._finishing:
                self._issued += 1
                tick = asyncio.create_task(self._tick(gen, execution_id, self._issued))
                self._inflight.add(tick)
                tick.add_done_callback(self._inflight.discard)

            next_tick += self.interval_s
            await asyncio.sleep(max(0.0, next_tick - loop.time()))

    async def _progress_loop(self, gen: int) -> None:
        while self._is_current(gen) and self.state is ExecutionStatus.RUNNING:
            await asyncio.sleep(self.progress_tick_s)
            if not self._is_current(gen) or self.state is not ExecutionStatus.RUNNING:
                return
            self.progress = min(self.progress + self._rng() * 10, self.progress_ceiling)
            self._notify()

    async def _tick(self, gen: int, execution_id: str, seq: int) -> None:
        if not self._should_fetch(gen):
            return
        self.status_fetches += 1
        try:
            snapshot = await self._fetch_status(execution_id)
        except Exception as e:
            logger.warning("Status fetch for execution %s failed: %s", execution_id, e)
            return

        if not self._should_fetch(gen) or seq < self._applied:
            # superseded, already terminal, another tick is finishing, or a newer response landed first
            return
        self._applied = seq

        observed = next_status(self.state, normalize_remote_status(snapshot.get("status")))
        self.stats = snapshot.get("stats")

        if observed is ExecutionStatus.SUCCEEDED:
            self._finishing = True
            results = snapshot.get("results")
            if self._fetch_results is not None:
                self.results_fetches += 1
                try:
                    results = await self._fetch_results(execution_id)
                except Exception as e:
                    logger.warning("Results fetch for execution %s failed: %s", execution_id, e)
                    self._finishing = False
                    return
            if not self._is_current(gen):
                return
            self.results = results
            self.progress = 100.0
            self._finish(ExecutionStatus.SUCCEEDED)
        elif observed is ExecutionStatus.FAILED:
            self._finish(ExecutionStatus.FAILED)
        else:
            self.state = observed
            self._notify()

    def _finish(self, status: ExecutionStatus) -> None:
        self.state = status
        self._finishing = False
        self._stop_tasks()
        current = asyncio.current_task()
        for t in list(self._inflight):
            if t is not current:
                t.cancel()
        if self._done is not None:
            self._done.set()
        logger.info("Execution %s finished with %s", self.execution_id, status.value)
        self._notify()

    def _notify(self) -> None:
        if self._on_update is not None:
            self._on_update(self)
