from typing import Final
from enum import StrEnum

ADDRESS_PREFIX: Final = "0x"
ADDRESS_LENGTH: Final = 42

# Native transfer, no calldata
TRANSFER_GAS: Final = 21_000

# Substrings (lowercased) of errors worth another try
TRANSIENT_SIGNATURES: Final = (
    "rate limit",
    "capacity exceeded",
    "too many requests",
)

PREVIEW_COUNT: Final = 10


class SelectionMode(StrEnum):
    RANDOM     = "random"
    SEQUENTIAL = "sequential"


class RoundState(StrEnum):
    IDLE          = "IDLE"
    GATING        = "GATING"
    SELECTING     = "SELECTING"
    SENDING       = "SENDING"
    PERSISTING    = "PERSISTING"
    FAULTED       = "FAULTED"
    RETRYING_SOON = "RETRYING_SOON"


__all__ = [
    "ADDRESS_LENGTH",
    "ADDRESS_PREFIX",
    "PREVIEW_COUNT",
    "TRANSFER_GAS",
    "TRANSIENT_SIGNATURES",

    ######
    "RoundState",
    "SelectionMode",
]
