"""Mini README: Live balance view of one project.

Structure:
    * SessionState - lifecycle states (idle, loading, live, closed, not found).
    * SnapshotUpdate - payload delivered to observers.
    * ReconciliationSession - subscribes to a project's expense changes and
      re-aggregates the full expense set on every notification.

Lifecycle:
    ``open`` moves Idle -> Loading -> Live, or to the terminal Not Found state
    when the project does not exist. Notifications trigger a fresh full fetch
    without leaving Live, so observers keep the previous snapshot until the
    new one lands. ``refresh`` forces Live -> Loading -> Live. ``close`` is
    idempotent and terminal.

Overlapping fetches:
    Each fetch takes a ticket when issued. A completed fetch is applied
    unless a fetch with a higher ticket has already been applied, so a slow
    early fetch can never overwrite the result of a later one.

Channel loss:
    When the store drops the subscription the session resubscribes once. If
    that fails it keeps the last good snapshot, marks itself degraded and
    tells observers.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Set

from ..errors import StoreError
from ..logging_utils import get_logger
from .aggregator import BalanceAggregator, BalanceSnapshot
from .models import ExpenseChange
from .store import LedgerStore, Subscription

LOGGER = get_logger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LIVE = "live"
    CLOSED = "closed"
    NOT_FOUND = "not_found"


@dataclass(frozen=True, slots=True)
class SnapshotUpdate:
    """What observers receive whenever the session's view changes."""

    snapshot: Optional[BalanceSnapshot]
    state: SessionState
    degraded: bool = False
    error: Optional[str] = None


SnapshotCallback = Callable[[SnapshotUpdate], None]


class ReconciliationSession:
    """Keep one project's balance snapshot current for its observers."""

    def __init__(self, store: LedgerStore) -> None:
        self._store = store
        self._state = SessionState.IDLE
        self._project_id: Optional[str] = None
        self._snapshot: Optional[BalanceSnapshot] = None
        self._subscription: Optional[Subscription] = None
        self._callbacks: List[SnapshotCallback] = []
        self._pending: Set[asyncio.Task] = set()
        self._issued = 0
        self._applied = 0
        self._degraded = False
        self._last_error: Optional[str] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def project_id(self) -> Optional[str]:
        return self._project_id

    @property
    def degraded(self) -> bool:
        """True while the session serves a stale snapshot without a live subscription."""

        return self._degraded

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def current_snapshot(self) -> Optional[BalanceSnapshot]:
        """Latest applied snapshot, or ``None`` when none is available yet."""

        return self._snapshot

    def on_snapshot_changed(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Register ``callback``; the returned function detaches it again."""

        self._callbacks.append(callback)

        def _detach() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _detach

    async def open(self, project_id: str) -> SessionState:
        """Bind to ``project_id`` and load the first snapshot.

        Returns ``SessionState.LIVE`` or ``SessionState.NOT_FOUND``. Any
        failure while opening closes the session and then propagates.
        """

        if self._state is not SessionState.IDLE:
            raise RuntimeError(f"Session already {self._state.value}; open a new session instead")
        self._project_id = project_id
        self._state = SessionState.LOADING
        LOGGER.info("Opening reconciliation session for project %s", project_id)
        try:
            # Subscribe first so writes landing during the initial load still trigger a fetch.
            self._subscription = await self._store.subscribe_expense_changes(
                project_id, self._handle_change, on_drop=self._handle_drop
            )
            await self._fetch("open")
        except Exception:
            LOGGER.error("Could not open session for project %s", project_id, exc_info=True)
            self.close()
            raise
        return self._state

    async def refresh(self) -> Optional[BalanceSnapshot]:
        """Force a full reload while keeping the current snapshot visible."""

        if self._state is not SessionState.LIVE:
            raise RuntimeError(f"Cannot refresh a session that is {self._state.value}")
        self._state = SessionState.LOADING
        try:
            if self._subscription is None and self._degraded:
                await self._resubscribe()
            await self._fetch("refresh")
        except StoreError as error:
            LOGGER.error("Forced refresh of project %s failed", self._project_id, exc_info=True)
            self._last_error = str(error)
            raise
        finally:
            if self._state is SessionState.LOADING:
                self._state = SessionState.LIVE
        return self._snapshot

    def close(self) -> None:
        """Release the subscription and stop delivering snapshots."""

        if self._state is SessionState.CLOSED:
            return
        self._release_subscription()
        self._state = SessionState.CLOSED
        LOGGER.info("Closed reconciliation session for project %s", self._project_id)

    async def drain(self) -> None:
        """Wait for every fetch scheduled by notifications to finish."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def __aenter__(self) -> "ReconciliationSession":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def _finished(self) -> bool:
        return self._state in (SessionState.CLOSED, SessionState.NOT_FOUND)

    def _release_subscription(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    def _schedule(self, coroutine) -> None:
        task = asyncio.get_running_loop().create_task(coroutine)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _handle_change(self, change: ExpenseChange) -> None:
        if self._finished:
            return
        LOGGER.debug(
            "Expense %s %s on project %s; scheduling recompute",
            change.expense_id,
            change.event.value,
            change.project_id,
        )
        self._schedule(self._fetch_in_background("change"))

    def _handle_drop(self) -> None:
        if self._finished:
            return
        LOGGER.warning("Change subscription for project %s dropped", self._project_id)
        self._subscription = None
        self._schedule(self._recover_subscription())

    async def _recover_subscription(self) -> None:
        try:
            await self._resubscribe()
        except StoreError as error:
            LOGGER.error(
                "Resubscription for project %s failed; serving last known snapshot",
                self._project_id,
                exc_info=True,
            )
            self._degraded = True
            self._last_error = str(error)
            self._publish()
            return
        # Changes may have been missed while the channel was down.
        await self._fetch_in_background("resubscribe")

    async def _resubscribe(self) -> None:
        subscription = await self._store.subscribe_expense_changes(
            self._project_id, self._handle_change, on_drop=self._handle_drop
        )
        if self._finished:
            subscription.cancel()
            return
        self._subscription = subscription
        if self._degraded:
            self._degraded = False
            self._last_error = None
        LOGGER.info("Resubscribed to expense changes for project %s", self._project_id)

    async def _fetch_in_background(self, reason: str) -> None:
        try:
            await self._fetch(reason)
        except StoreError as error:
            LOGGER.error(
                "Recompute (%s) for project %s failed; keeping last snapshot",
                reason,
                self._project_id,
                exc_info=True,
            )
            self._last_error = str(error)
            self._publish()

    async def _fetch(self, reason: str) -> None:
        self._issued += 1
        ticket = self._issued
        project = await self._store.get_project(self._project_id)
        expenses = await self._store.list_expenses(self._project_id) if project else []

        if self._finished:
            LOGGER.debug("Discarding fetch %s (%s): session is %s", ticket, reason, self._state.value)
            return
        if ticket < self._applied:
            LOGGER.warning(
                "Discarding stale fetch %s (%s); fetch %s already applied",
                ticket,
                reason,
                self._applied,
            )
            return
        self._applied = ticket

        if project is None:
            LOGGER.warning("Project %s not found; session ends", self._project_id)
            self._release_subscription()
            self._snapshot = None
            self._state = SessionState.NOT_FOUND
            self._publish()
            return

        self._snapshot = BalanceAggregator.aggregate(project, expenses)
        if self._state is SessionState.LOADING:
            self._state = SessionState.LIVE
        if not self._degraded:
            self._last_error = None
        LOGGER.debug("Applied fetch %s (%s) for project %s", ticket, reason, self._project_id)
        self._publish()

    def _publish(self) -> None:
        if self._state is SessionState.CLOSED:
            return
        update = SnapshotUpdate(
            snapshot=self._snapshot,
            state=self._state,
            degraded=self._degraded,
            error=self._last_error,
        )
        for callback in list(self._callbacks):
            try:
                callback(update)
            except Exception:
                LOGGER.exception("Snapshot observer %r failed", callback)
