"""Recipient list loading.

Two line shapes are understood: a bare address (random mode) or
``label,address`` (sequential mode). Anything else, and any address that is
not a ``0x`` + 40 hex digit account identifier, is dropped and counted.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from eth_utils import is_hex_address

import autosend.constants as C
from autosend.errors import EmptySourceError

log = logging.getLogger("autosend.address_book")


@dataclass(frozen=True, slots=True)
class AddressEntry:
    address: str
    label: str | None = None

    def __str__(self):
        return f"{self.label} ({self.address})" if self.label else self.address


@dataclass(frozen=True, slots=True)
class AddressBook:
    entries: tuple[AddressEntry, ...]
    dropped: int = 0
    source: str = "<lines>"

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)


def is_valid_address(address: str) -> bool:
    return (
        address.startswith(C.ADDRESS_PREFIX)
        and len(address) == C.ADDRESS_LENGTH
        and is_hex_address(address)
    )


def parse_line(line: str, *, labeled: bool) -> AddressEntry | None:
    """Return the entry for one stripped line, or None if it does not fit the shape."""
    if labeled:
        label, sep, address = line.rpartition(",")
        if not sep:
            return None
        address = address.strip()
        label = label.strip() or None
    else:
        if "," in line:
            return None
        label, address = None, line
    if not is_valid_address(address):
        return None
    return AddressEntry(address=address, label=label)


def load_address_book(source: str | Path | Iterable[str], *, labeled: bool = False) -> AddressBook:
    if isinstance(source, (str, Path)):
        name = str(source)
        try:
            lines = Path(source).read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise EmptySourceError(f"Could not read address source {name}: {e}") from e
    else:
        name = "<lines>"
        lines = list(source)

    entries: list[AddressEntry] = []
    dropped = 0
    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        entry = parse_line(line, labeled=labeled)
        if entry is None:
            dropped += 1
            continue
        entries.append(entry)

    if not entries:
        raise EmptySourceError(f"No valid addresses found in {name}")
    if dropped:
        log.debug("Dropped %d malformed line(s) from %s", dropped, name)
    log.info("Loaded %d address(es) from %s", len(entries), name)
    return AddressBook(entries=tuple(entries), dropped=dropped, source=name)
