import logging
from typing import Protocol

from web3 import Web3

from autosend.errors import BalanceQueryError, RecoverableError
from autosend.retry import RetryExecutor

log = logging.getLogger("autosend.balance_gate")


class AccountQuery(Protocol):
    async def get_balance(self, address: str) -> int: ...


class BalanceGate:
    def __init__(self, query: AccountQuery, retry: RetryExecutor, *, symbol: str = "ETH") -> None:
        self.query = query
        self.retry = retry
        self.symbol = symbol

    async def check(self, account: str, required_per_recipient: int, recipient_count: int) -> bool:
        """True iff the account can cover every recipient of the round (amounts in wei, gas excluded)."""
        minimum = required_per_recipient * recipient_count
        try:
            balance = await self.retry.run(lambda: self.query.get_balance(account), label="balance query")
        except RecoverableError as e:
            raise BalanceQueryError(f"Failed to check balance of {account}: {e}") from e

        log.info("Current wallet balance: %s %s", Web3.from_wei(balance, "ether"), self.symbol)
        if balance < minimum:
            log.error(
                "Insufficient balance for sending to %d addresses. Need at least %s %s (excluding gas).",
                recipient_count,
                Web3.from_wei(minimum, "ether"),
                self.symbol,
            )
            return False
        return True
