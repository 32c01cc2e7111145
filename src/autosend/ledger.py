"""web3 adapters for the two ledger collaborators: balance queries and signed transfers."""

import asyncio
import logging

import httpx
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import TimeExhausted, Web3Exception

import autosend.constants as C
from autosend.batch import PendingTransfer, Receipt, TransferRequest
from autosend.errors import CredentialError, FinalityError, SubmissionError

log = logging.getLogger("autosend.ledger")

TIMEOUT = 10.0


def new_connection(rpc_url: str) -> AsyncWeb3:
    return AsyncWeb3(AsyncHTTPProvider(rpc_url))


async def close_connection(w3: AsyncWeb3) -> None:
    """Close the provider's cached aiohttp sessions."""
    await w3.provider.disconnect()


def load_account(private_key: str) -> LocalAccount:
    key = private_key.strip()
    if not key.startswith("0x"):
        key = "0x" + key
    if len(key) != 66:
        raise CredentialError("Invalid private key format. Expected 32 bytes of hex.")
    try:
        return Account.from_key(key)
    except Exception as e:
        raise CredentialError(f"Invalid private key: {e.__class__.__name__}") from e


async def probe_rpc(url: str, max_retries: int = 10, retry_delay: float = 3.0) -> int:
    """Probe the JSON-RPC endpoint with retries until it answers. Returns the chain id."""
    payload = {"jsonrpc": "2.0", "id": 1, "method": "eth_chainId", "params": []}

    for attempt in range(1, max_retries + 1):
        try:
            async with httpx.AsyncClient(timeout=TIMEOUT) as http:
                r = await http.post(url, json=payload)
                r.raise_for_status()
                chain_id = int(r.json()["result"], 16)
                log.info("RPC endpoint responding, chain id %d (attempt %d/%d)", chain_id, attempt, max_retries)
                return chain_id
        except Exception as e:
            if attempt < max_retries:
                log.info(f"RPC not ready yet (attempt {attempt}/{max_retries}): {e.__class__.__name__} - retrying in {retry_delay}s...")
                await asyncio.sleep(retry_delay)
            else:
                log.error(f"RPC failed after {max_retries} attempts")
                raise


class Web3AccountQuery:
    def __init__(self, w3: AsyncWeb3) -> None:
        self.w3 = w3

    async def get_balance(self, address: str) -> int:
        return await self.w3.eth.get_balance(Web3.to_checksum_address(address))


class Web3TransferSigner:
    """Legacy-priced native transfers signed locally with the disbursing key."""

    def __init__(
        self,
        w3: AsyncWeb3,
        account: LocalAccount,
        *,
        gas_limit: int = C.TRANSFER_GAS,
        receipt_timeout: float = 120.0,
        poll_interval: float = 2.0,
    ) -> None:
        self.w3 = w3
        self.account = account
        self.gas_limit = gas_limit
        self.receipt_timeout = receipt_timeout
        self.poll_interval = poll_interval

    async def submit(self, request: TransferRequest) -> PendingTransfer:
        sender = self.account.address
        tx = {
            "to": Web3.to_checksum_address(request.destination),
            "value": request.amount,
            "gas": self.gas_limit,
            "gasPrice": await self.w3.eth.gas_price,
            "nonce": await self.w3.eth.get_transaction_count(sender, "pending"),
            "chainId": await self.w3.eth.chain_id,
        }
        signed = self.account.sign_transaction(tx)
        try:
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except (ValueError, Web3Exception) as e:
            # node-side rejection (nonce too low, underpriced, ...) arrives as an RPC error payload
            raise SubmissionError(f"Node rejected transfer to {request.destination}: {e}") from e
        return PendingTransfer(tx_hash=Web3.to_hex(tx_hash), destination=request.destination, amount=request.amount)

    async def wait(self, pending: PendingTransfer) -> Receipt:
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                pending.tx_hash, timeout=self.receipt_timeout, poll_latency=self.poll_interval
            )
        except TimeExhausted as e:
            raise FinalityError(f"No receipt for {pending.tx_hash} after {self.receipt_timeout}s") from e

        if receipt["status"] != 1:
            raise FinalityError(f"Transaction {pending.tx_hash} reverted in block {receipt['blockNumber']}")
        return Receipt(tx_hash=pending.tx_hash, block_number=int(receipt["blockNumber"]))
