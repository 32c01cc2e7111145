import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from web3 import Web3

from autosend.address_book import AddressEntry
from autosend.errors import RecoverableError
from autosend.retry import RetryExecutor, Sleep

log = logging.getLogger("autosend.batch")


@dataclass(frozen=True, slots=True)
class TransferRequest:
    destination: str
    amount: int  # wei


@dataclass(frozen=True, slots=True)
class PendingTransfer:
    tx_hash: str
    destination: str
    amount: int


@dataclass(frozen=True, slots=True)
class Receipt:
    tx_hash: str
    block_number: int


class TransferSigner(Protocol):
    async def submit(self, request: TransferRequest) -> PendingTransfer: ...
    async def wait(self, pending: PendingTransfer) -> Receipt: ...


@dataclass(frozen=True, slots=True)
class Confirmed:
    entry: AddressEntry
    tx_hash: str
    block_number: int


@dataclass(frozen=True, slots=True)
class Failed:
    entry: AddressEntry
    reason: str
    attempts: int = 1


TransferOutcome = Confirmed | Failed


def partition(items: Sequence, size: int) -> list[Sequence]:
    if size < 1:
        raise ValueError(f"batch size must be at least 1, got {size}")
    return [items[i : i + size] for i in range(0, len(items), size)]


class BatchRunner:
    """Sends to every recipient, one at a time, in fixed-size batches.

    A failed recipient is recorded and skipped; it never stops the batch or the round.
    """

    def __init__(
        self,
        retry: RetryExecutor,
        amount: int,
        *,
        batch_size: int = 20,
        transfer_delay: float = 2.0,
        batch_delay: float = 30.0,
        symbol: str = "ETH",
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch size must be at least 1, got {batch_size}")
        self.retry = retry
        self.amount = amount
        self.batch_size = batch_size
        self.transfer_delay = transfer_delay
        self.batch_delay = batch_delay
        self.symbol = symbol
        self._sleep = sleep

    async def run(self, recipients: Sequence[AddressEntry], signer: TransferSigner) -> list[TransferOutcome]:
        batches = partition(recipients, self.batch_size)
        total = len(recipients)
        log.info("Processing %d addresses in %d batches of %d", total, len(batches), self.batch_size)

        outcomes: list[TransferOutcome] = []
        for batch_idx, batch in enumerate(batches):
            log.info("Processing batch %d/%d", batch_idx + 1, len(batches))
            for i, entry in enumerate(batch):
                position = batch_idx * self.batch_size + i + 1
                outcomes.append(await self.send_one(entry, signer, position, total))
                if i < len(batch) - 1:
                    await self._sleep(self.transfer_delay)

            if batch_idx < len(batches) - 1:
                log.info("Cooling down for %ss before next batch", self.batch_delay)
                await self._sleep(self.batch_delay)

        confirmed = sum(isinstance(o, Confirmed) for o in outcomes)
        log.info("Round sends finished: %d confirmed, %d failed", confirmed, len(outcomes) - confirmed)
        return outcomes

    async def send_one(self, entry: AddressEntry, signer: TransferSigner, position: int, total: int) -> TransferOutcome:
        request = TransferRequest(destination=entry.address, amount=self.amount)
        log.info("[%d/%d] Sending %s %s to %s", position, total, Web3.from_wei(self.amount, "ether"), self.symbol, entry)
        try:
            pending = await self.retry.run(lambda: signer.submit(request), label=f"submit to {entry.address}")
            log.info("Transaction sent: %s", pending.tx_hash)
            receipt = await self.retry.run(lambda: signer.wait(pending), label=f"confirm {pending.tx_hash}")
        except RecoverableError as e:
            attempts = getattr(e, "attempts", 1)
            log.error("FAILED: could not send to %s: %s", entry, e)
            return Failed(entry=entry, reason=str(e), attempts=attempts)

        log.info("Transaction confirmed in block %d", receipt.block_number)
        return Confirmed(entry=entry, tx_hash=receipt.tx_hash, block_number=receipt.block_number)
