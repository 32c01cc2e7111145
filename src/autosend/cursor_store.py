"""Persisted position in the sequential address list."""

import logging
import os
from pathlib import Path
from typing import Protocol

log = logging.getLogger("autosend.cursor_store")


class CursorStore(Protocol):
    def load(self) -> int: ...
    def save(self, cursor: int) -> None: ...


class MemoryCursorStore:
    def __init__(self, cursor: int = 0) -> None:
        self.cursor = cursor
        self.saves: list[int] = []

    def load(self) -> int:
        return self.cursor

    def save(self, cursor: int) -> None:
        self.cursor = cursor
        self.saves.append(cursor)


class FileCursorStore:
    """One non-negative integer in decimal text.

    A missing or unreadable file is not an error: the cursor starts at 0.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> int:
        try:
            text = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            log.info("No cursor file at %s, starting from 0", self.path)
            return 0
        except OSError as e:
            log.warning("Could not read cursor file %s (%s), starting from 0", self.path, e)
            return 0
        try:
            cursor = int(text)
        except ValueError:
            log.warning("Unparsable cursor %r in %s, starting from 0", text, self.path)
            return 0
        if cursor < 0:
            log.warning("Negative cursor %d in %s, starting from 0", cursor, self.path)
            return 0
        return cursor

    def save(self, cursor: int) -> None:
        if cursor < 0:
            raise ValueError(f"cursor must be non-negative, got {cursor}")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(f"{cursor}\n", encoding="utf-8")
        os.replace(tmp, self.path)
        log.debug("Saved cursor %d to %s", cursor, self.path)
