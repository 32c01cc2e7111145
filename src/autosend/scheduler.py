"""Round orchestration: gate, select, send, persist, then decide when to run again.

Every round ends in one of three outcomes and a single loop turns that outcome
into the next delay. Rounds never overlap: the next one is only scheduled once
the previous one has returned.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import autosend.constants as C
from autosend.address_book import AddressBook
from autosend.balance_gate import AccountQuery, BalanceGate
from autosend.batch import BatchRunner, Confirmed, TransferOutcome, TransferSigner
from autosend.cursor_store import CursorStore
from autosend.errors import FatalError, RecoverableError
from autosend.retry import RetryExecutor, Sleep
from autosend.selector import Selector

log = logging.getLogger("autosend.scheduler")


@dataclass(frozen=True, slots=True)
class Completed:
    next_cursor: int | None
    outcomes: tuple[TransferOutcome, ...] = ()

    @property
    def confirmed(self) -> int:
        return sum(isinstance(o, Confirmed) for o in self.outcomes)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.confirmed


@dataclass(frozen=True, slots=True)
class SkippedInsufficientFunds:
    pass


@dataclass(frozen=True, slots=True)
class Faulted:
    error: BaseException


RoundOutcome = Completed | SkippedInsufficientFunds | Faulted


@dataclass
class RoundStatus:
    """What the status API shows. Only the scheduler writes it."""

    state: C.RoundState = C.RoundState.IDLE
    rounds_started: int = 0
    rounds_completed: int = 0
    cursor: int = 0
    last_outcome: str | None = None
    last_error: str | None = None
    last_outcomes: tuple[TransferOutcome, ...] = ()
    last_round_at: float | None = None
    next_round_at: float | None = None


@dataclass
class RoundDeps:
    """Per-round collaborators. The ledger handle is created fresh for every round and closed when it ends."""

    load_book: Callable[[], AddressBook]
    connect: Callable[[], object]
    account_query: Callable[[object], AccountQuery]
    signer: Callable[[object], TransferSigner]
    disconnect: Callable[[object], Awaitable[None]]


@dataclass
class RunScheduler:
    deps: RoundDeps
    selector: Selector
    cursor_store: CursorStore
    retry: RetryExecutor
    runner: BatchRunner
    account: str
    amount: int
    count: int
    interval: float
    retry_interval: float
    symbol: str = "ETH"
    sleep: Sleep = asyncio.sleep
    clock: Callable[[], float] = time.time
    status: RoundStatus = field(default_factory=RoundStatus)

    def _enter(self, state: C.RoundState) -> None:
        log.debug("%s -> %s", self.status.state, state)
        self.status.state = state

    async def execute_round(self, cursor: int) -> RoundOutcome:
        self._enter(C.RoundState.GATING)
        book = self.deps.load_book()
        w3 = self.deps.connect()
        try:
            return await self._disburse(w3, book, cursor)
        finally:
            await self._close(w3)

    async def _disburse(self, w3, book: AddressBook, cursor: int) -> RoundOutcome:
        gate = BalanceGate(self.deps.account_query(w3), self.retry, symbol=self.symbol)
        if not await gate.check(self.account, self.amount, self.count):
            return SkippedInsufficientFunds()

        self._enter(C.RoundState.SELECTING)
        selection = self.selector.select_round(book, self.count, self.account, cursor)
        preview = ", ".join(str(e) for e in selection.entries[: C.PREVIEW_COUNT])
        more = len(selection) - C.PREVIEW_COUNT
        log.info("Selected %d addresses for sending: %s%s", len(selection), preview, f" ... and {more} more" if more > 0 else "")

        self._enter(C.RoundState.SENDING)
        outcomes = await self.runner.run(selection.entries, self.deps.signer(w3))

        self._enter(C.RoundState.PERSISTING)
        if selection.next_cursor is not None:
            self.cursor_store.save(selection.next_cursor)
            log.info("Cursor advanced to %d", selection.next_cursor)
        return Completed(next_cursor=selection.next_cursor, outcomes=tuple(outcomes))

    async def _close(self, w3) -> None:
        # Closing never changes the round outcome
        try:
            await self.deps.disconnect(w3)
        except Exception as e:
            log.warning("Could not close ledger connection: %s", e)

    async def run_round(self, cursor: int) -> RoundOutcome:
        """Run one round and always come back with an outcome.

        Startup already validated the address book, so a book that goes empty or
        self-only later faults the round and is retried soon instead of stopping the process.
        """
        self.status.rounds_started += 1
        try:
            outcome = await self.execute_round(cursor)
        except (FatalError, RecoverableError) as e:
            log.error("Round skipped: %s", e)
            outcome = Faulted(e)
        except Exception as e:
            log.exception("Error in scheduled run: %s", e)
            outcome = Faulted(e)
        self._record(outcome)
        return outcome

    def _record(self, outcome: RoundOutcome) -> None:
        st = self.status
        st.last_round_at = self.clock()
        st.last_outcome = type(outcome).__name__
        if isinstance(outcome, Completed):
            st.rounds_completed += 1
            st.last_outcomes = outcome.outcomes
            st.last_error = None
            log.info("COMPLETE: %d confirmed, %d failed", outcome.confirmed, outcome.failed)
            self._enter(C.RoundState.IDLE)
        elif isinstance(outcome, SkippedInsufficientFunds):
            st.last_error = "insufficient funds"
            self._enter(C.RoundState.RETRYING_SOON)
        else:
            st.last_error = f"{type(outcome.error).__name__}: {outcome.error}"
            self._enter(C.RoundState.FAULTED)

    def next_delay(self, outcome: RoundOutcome) -> float:
        if isinstance(outcome, Completed):
            return self.interval
        return self.retry_interval

    async def run_forever(self, *, max_rounds: int | None = None) -> None:
        cursor = self.cursor_store.load()
        self.status.cursor = cursor
        rounds = 0
        while max_rounds is None or rounds < max_rounds:
            outcome = await self.run_round(cursor)
            rounds += 1
            if isinstance(outcome, Completed) and outcome.next_cursor is not None:
                cursor = outcome.next_cursor
                self.status.cursor = cursor
            if max_rounds is not None and rounds >= max_rounds:
                break

            delay = self.next_delay(outcome)
            self.status.next_round_at = self.clock() + delay
            if not isinstance(outcome, Completed):
                self._enter(C.RoundState.RETRYING_SOON)
            log.info(
                "Next run scheduled for %s",
                time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(self.status.next_round_at)),
            )
            await self.sleep(delay)
