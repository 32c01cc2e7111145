import logging
import random
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from autosend.address_book import AddressEntry
from autosend.errors import SelfOnlyBookError

log = logging.getLogger("autosend.selector")


@dataclass(frozen=True, slots=True)
class RoundSelection:
    entries: tuple[AddressEntry, ...]
    next_cursor: int | None = None  # None: nothing to persist (random mode)
    wraps: int = 0
    reduced: bool = False  # fewer entries than asked for

    def __len__(self) -> int:
        return len(self.entries)


class Selector(Protocol):
    def select_round(
        self, book: Iterable[AddressEntry], count: int, self_address: str | None, cursor: int
    ) -> RoundSelection: ...


def _without_self(book: Iterable[AddressEntry], self_address: str | None) -> list[AddressEntry]:
    if not self_address:
        return list(book)
    me = self_address.lower()
    return [e for e in book if e.address.lower() != me]


def require_recipients(book: Iterable[AddressEntry], self_address: str | None) -> list[AddressEntry]:
    pool = _without_self(book, self_address)
    if not pool:
        raise SelfOnlyBookError("Address book contains only the disbursing account")
    return pool


class RandomSelector:
    """Uniform sample without replacement. The cursor is ignored."""

    def __init__(self, *, exclude_self: bool = False, rng: random.Random | None = None) -> None:
        self.exclude_self = exclude_self
        self._rng = rng or random.Random()

    def select_round(self, book, count, self_address=None, cursor=0) -> RoundSelection:
        if count < 0:
            raise ValueError(f"count must be non-negative, got {count}")
        pool = _without_self(book, self_address) if self.exclude_self else list(book)
        if count == 0:
            return RoundSelection(entries=())
        if len(pool) <= count:
            log.warning("Not enough addresses (%d) for %d recipients, using all of them", len(pool), count)
            return RoundSelection(entries=tuple(pool), reduced=True)
        return RoundSelection(entries=tuple(self._rng.sample(pool, count)))


class SequentialSelector:
    """Contiguous window starting at the cursor, wrapping back to the start of the list."""

    def select_round(self, book, count, self_address=None, cursor=0) -> RoundSelection:
        if count < 0:
            raise ValueError(f"count must be non-negative, got {count}")
        pool = require_recipients(book, self_address)
        n = len(pool)

        start = cursor % n
        entries = tuple(pool[(start + i) % n] for i in range(count))
        wraps, next_cursor = divmod(start + count, n)
        if wraps:
            log.info("Address list wrapped around to the beginning (%d time(s))", wraps)
        log.debug("Selected %d entries from index %d, next cursor %d", count, start, next_cursor)
        return RoundSelection(entries=entries, next_cursor=next_cursor, wraps=wraps)
