"""Event relay: turns inventory events into idempotent bridge calls on worker threads."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable

from ratbridge.backend.bridge_client import TokenBridge
from ratbridge.backend.item_tokens import ItemTokenMap
from ratbridge.backend.models import BridgeResult, Direction, RelayEvent, RelayOutcome, RelayState
from ratbridge.backend.store import EventLedger, WalletStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_base: float = 0.5
    backoff_max: float = 8.0

    def delay_for(self, attempt: int) -> float:
        """Delay before the retry that follows ``attempt`` (1-based)."""
        return min(self.backoff_max, self.backoff_base * (2 ** (attempt - 1)))


class RelayTicket:
    """Handle returned by ``EventRelay.submit``; resolves once the event is terminal."""

    def __init__(self, event_id: str) -> None:
        self.event_id = event_id
        self.state = RelayState.PENDING
        self._future: Future[RelayOutcome] = Future()

    def result(self, timeout: float | None = None) -> RelayOutcome:
        return self._future.result(timeout=timeout)

    def done(self) -> bool:
        return self._future.done()

    def add_done_callback(self, callback: Callable[[RelayOutcome], None]) -> None:
        self._future.add_done_callback(lambda future: callback(future.result()))

    def _resolve(self, outcome: RelayOutcome) -> None:
        self.state = outcome.state
        self._future.set_result(outcome)


@dataclass
class _Job:
    event: RelayEvent
    ticket: RelayTicket
    attempts: int = 0


class EventRelay:
    """Dispatches relay events to the bridge.

    Events for one player are handled strictly in submission order, one at a
    time; events for different players run concurrently on the worker pool.
    ``submit`` never blocks on I/O beyond a ledger lookup, so it is safe to call
    from game event callbacks.
    """

    def __init__(
        self,
        wallets: WalletStore,
        item_tokens: ItemTokenMap,
        bridge: TokenBridge,
        ledger: EventLedger,
        retry: RetryPolicy | None = None,
        queue_bound: int = 100,
        workers: int = 4,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        if queue_bound < 1:
            raise ValueError("queue_bound must be at least 1")
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self._wallets = wallets
        self._item_tokens = item_tokens
        self._bridge = bridge
        self._ledger = ledger
        self._retry = retry or RetryPolicy()
        self._queue_bound = queue_bound
        self._worker_count = workers
        self._sleep = sleep

        self._cond = threading.Condition()
        self._lanes: dict[str, deque[_Job]] = {}
        self._ready: deque[str] = deque()
        self._busy: set[str] = set()
        self._tickets: dict[str, RelayTicket] = {}
        self._pending = 0
        self._in_flight = 0
        self._threads: list[threading.Thread] = []
        self._running = False
        self._closed = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending_count(self) -> int:
        with self._cond:
            return self._pending

    @property
    def in_flight_count(self) -> int:
        with self._cond:
            return self._in_flight

    def start(self) -> None:
        with self._cond:
            if self._running:
                return
            if self._closed:
                raise RuntimeError("EventRelay cannot be restarted after stop()")
            self._running = True
            for index in range(self._worker_count):
                thread = threading.Thread(target=self._worker_loop, name=f"relay-worker-{index}", daemon=True)
                self._threads.append(thread)
                thread.start()
        logger.info(f"Event relay started with {self._worker_count} workers")

    def stop(self, grace_period: float = 5.0) -> list[RelayOutcome]:
        """Refuse new events, wait for in-flight dispatches, then drop what is still queued.

        Returns the outcomes of the dropped events.
        """
        deadline = time.monotonic() + grace_period
        with self._cond:
            self._closed = True
            self._cond.notify_all()
            while self._in_flight > 0:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.warning(f"Shutdown grace period elapsed with {self._in_flight} dispatches in flight")
                    break
                self._cond.wait(remaining)

            leftovers: list[_Job] = []
            for lane in self._lanes.values():
                leftovers.extend(lane)
            for job in leftovers:
                self._tickets.pop(job.event.event_id, None)
            self._lanes = {player_id: deque() for player_id in self._busy}
            self._ready.clear()
            self._pending = 0
            self._running = False
            threads = list(self._threads)
            self._threads = []

        for thread in threads:
            thread.join(timeout=max(0.0, deadline - time.monotonic()))

        outcomes = []
        for job in leftovers:
            outcome = RelayOutcome(
                event_id=job.event.event_id,
                state=RelayState.DROPPED,
                reason="Relay shut down before dispatch",
            )
            job.ticket._resolve(outcome)
            outcomes.append(outcome)
        if outcomes:
            logger.warning(f"Dropped {len(outcomes)} pending events on shutdown")
        logger.info("Event relay stopped")
        return outcomes

    def submit(self, event: RelayEvent) -> RelayTicket:
        try:
            already_committed = self._ledger.is_committed(event.event_id)
        except Exception:
            # The worker checks the ledger again before dispatching.
            logger.exception(f"Ledger lookup failed for event {event.event_id}")
            already_committed = False

        if already_committed:
            logger.debug(f"Event {event.event_id} already committed; skipping")
            return _resolved_ticket(
                RelayOutcome(
                    event_id=event.event_id,
                    state=RelayState.COMMITTED,
                    reason="Already committed",
                    duplicate=True,
                )
            )

        with self._cond:
            existing = self._tickets.get(event.event_id)
            if existing is not None:
                logger.debug(f"Event {event.event_id} is already queued; returning existing ticket")
                return existing

            if self._closed:
                return _resolved_ticket(
                    RelayOutcome(event_id=event.event_id, state=RelayState.DROPPED, reason="Relay is shutting down")
                )

            if self._pending >= self._queue_bound:
                logger.warning(
                    f"Dispatch queue full ({self._pending}/{self._queue_bound}); "
                    f"dropping {event.direction.value} event {event.event_id} for player {event.player_id}"
                )
                return _resolved_ticket(
                    RelayOutcome(event_id=event.event_id, state=RelayState.DROPPED, reason="Dispatch queue is full")
                )

            ticket = RelayTicket(event.event_id)
            self._tickets[event.event_id] = ticket
            lane = self._lanes.setdefault(event.player_id, deque())
            if not lane and event.player_id not in self._busy:
                self._ready.append(event.player_id)
            lane.append(_Job(event=event, ticket=ticket))
            self._pending += 1
            self._cond.notify()
        return ticket

    def _worker_loop(self) -> None:
        while True:
            with self._cond:
                while not self._ready and not self._closed:
                    self._cond.wait()
                if self._closed:
                    return
                player_id = self._ready.popleft()
                job = self._lanes[player_id].popleft()
                self._busy.add(player_id)
                self._pending -= 1
                self._in_flight += 1

            outcome: RelayOutcome | None = None
            try:
                outcome = self._process(job)
            finally:
                with self._cond:
                    self._in_flight -= 1
                    self._busy.discard(player_id)
                    self._tickets.pop(job.event.event_id, None)
                    lane = self._lanes.get(player_id)
                    if lane:
                        self._ready.append(player_id)
                    else:
                        self._lanes.pop(player_id, None)
                    self._cond.notify_all()
                if outcome is not None:
                    job.ticket._resolve(outcome)

    def _process(self, job: _Job) -> RelayOutcome:
        """Run one event through resolve and dispatch. Never raises ``Exception``."""
        event = job.event
        try:
            if self._ledger.is_committed(event.event_id):
                return RelayOutcome(
                    event_id=event.event_id,
                    state=RelayState.COMMITTED,
                    reason="Already committed",
                    duplicate=True,
                )

            job.ticket.state = RelayState.RESOLVING
            address = self._wallets.lookup(event.player_id)
            if address is None:
                logger.debug(f"No wallet linked for player {event.player_id}; dropping event {event.event_id}")
                return RelayOutcome(event_id=event.event_id, state=RelayState.DROPPED, reason="No wallet linked")

            token_id = self._item_tokens.token_for(event.item_id)
            if token_id is None:
                logger.debug(f"Item {event.item_id} is not tracked; dropping event {event.event_id}")
                return RelayOutcome(event_id=event.event_id, state=RelayState.DROPPED, reason="Item not tracked")

            job.ticket.state = RelayState.DISPATCHING
            return self._dispatch(job, address, token_id)
        except Exception as exc:
            logger.exception(f"Relay of event {event.event_id} failed")
            return RelayOutcome(
                event_id=event.event_id,
                state=RelayState.REJECTED,
                reason=f"Internal error: {exc}",
                attempts=job.attempts,
            )

    def _dispatch(self, job: _Job, address: str, token_id: int) -> RelayOutcome:
        event = job.event
        call = self._bridge.mint if event.direction is Direction.MINT else self._bridge.burn
        while True:
            job.attempts += 1
            result: BridgeResult = call(address, token_id, event.amount, event.event_id)

            if result.accepted:
                self._ledger.record_committed(event)
                logger.info(
                    f"{event.direction.value.capitalize()}ed token {token_id} x{event.amount} "
                    f"for {address} (event {event.event_id})"
                )
                return RelayOutcome(event_id=event.event_id, state=RelayState.COMMITTED, attempts=job.attempts)

            if not result.retryable:
                logger.warning(
                    f"Bridge refused {event.direction.value} for event {event.event_id}: "
                    f"{result.outcome.value} ({result.reason})"
                )
                return RelayOutcome(
                    event_id=event.event_id,
                    state=RelayState.REJECTED,
                    reason=result.reason,
                    attempts=job.attempts,
                )

            if job.attempts >= self._retry.max_attempts:
                logger.warning(
                    f"Giving up on {event.direction.value} event {event.event_id} "
                    f"after {job.attempts} attempts: {result.reason}"
                )
                return RelayOutcome(
                    event_id=event.event_id,
                    state=RelayState.REJECTED,
                    reason=f"Gave up after {job.attempts} attempts: {result.reason}",
                    attempts=job.attempts,
                )

            delay = self._retry.delay_for(job.attempts)
            logger.debug(f"Retrying event {event.event_id} in {delay:.2f}s ({result.reason})")
            if self._backoff(delay):
                logger.warning(f"Relay stopped while retrying event {event.event_id}; giving up after {job.attempts} attempts")
                return RelayOutcome(
                    event_id=event.event_id,
                    state=RelayState.REJECTED,
                    reason="Relay shut down during retry",
                    attempts=job.attempts,
                )

    def _backoff(self, delay: float) -> bool:
        """Wait before the next attempt; returns True when the relay was stopped meanwhile."""
        if self._sleep is not None:
            self._sleep(delay)
            with self._cond:
                return self._closed
        with self._cond:
            return self._cond.wait_for(lambda: self._closed, timeout=delay)


def _resolved_ticket(outcome: RelayOutcome) -> RelayTicket:
    ticket = RelayTicket(outcome.event_id)
    ticket._resolve(outcome)
    return ticket
