import argparse
import asyncio
import getpass
import logging
import sys
from functools import partial
from pathlib import Path

import uvicorn
from eth_account.signers.local import LocalAccount

import autosend.constants as C
from autosend.address_book import load_address_book
from autosend.app import create_app
from autosend.batch import BatchRunner
from autosend.config import Settings, load_settings
from autosend.cursor_store import FileCursorStore
from autosend.errors import FatalError
from autosend.ledger import (
    Web3AccountQuery,
    Web3TransferSigner,
    close_connection,
    load_account,
    new_connection,
    probe_rpc,
)
from autosend.logging_config import setup_logging
from autosend.retry import RetryExecutor
from autosend.scheduler import RoundDeps, RunScheduler
from autosend.selector import RandomSelector, SequentialSelector, require_recipients

log = logging.getLogger("autosend.main")


def build_scheduler(settings: Settings, account: LocalAccount) -> RunScheduler:
    sched, sel, led = settings.schedule, settings.selection, settings.ledger
    sequential = sel.mode == C.SelectionMode.SEQUENTIAL

    retry = RetryExecutor(sched.max_attempts, sched.retry_delay, transient_signatures=sched.transient_signatures)
    runner = BatchRunner(
        retry,
        led.amount_wei,
        batch_size=sched.batch_size,
        transfer_delay=sched.transfer_delay,
        batch_delay=sched.batch_delay,
        symbol=led.symbol,
    )

    def make_signer(w3) -> Web3TransferSigner:
        return Web3TransferSigner(
            w3,
            account,
            gas_limit=led.gas_limit,
            receipt_timeout=led.receipt_timeout,
            poll_interval=led.receipt_poll_interval,
        )

    deps = RoundDeps(
        load_book=partial(load_address_book, settings.addresses_file, labeled=sequential),
        connect=partial(new_connection, led.rpc_url),
        account_query=Web3AccountQuery,
        signer=make_signer,
        disconnect=close_connection,
    )
    selector = SequentialSelector() if sequential else RandomSelector(exclude_self=sel.random_excludes_self)
    return RunScheduler(
        deps=deps,
        selector=selector,
        cursor_store=FileCursorStore(settings.cursor_file),
        retry=retry,
        runner=runner,
        account=account.address,
        amount=led.amount_wei,
        count=sel.count,
        interval=sched.interval,
        retry_interval=sched.retry_interval,
        symbol=led.symbol,
    )


async def serve(scheduler: RunScheduler, settings: Settings, *, api: bool, max_rounds: int | None) -> None:
    if not api:
        await scheduler.run_forever(max_rounds=max_rounds)
        return

    server = uvicorn.Server(
        uvicorn.Config(create_app(scheduler), host=settings.api.host, port=settings.api.port, log_config=None)
    )

    async def rounds():
        try:
            await scheduler.run_forever(max_rounds=max_rounds)
        finally:
            server.should_exit = True

    async with asyncio.TaskGroup() as tg:
        tg.create_task(server.serve(), name="api")
        tg.create_task(rounds(), name="scheduler")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="autosend", description="Recurring native-asset disbursement.")
    parser.add_argument("-c", "--config", type=Path, help="Path to a config.toml.")
    parser.add_argument("-m", "--mode", choices=[m.value for m in C.SelectionMode], help="Override selection mode.")
    parser.add_argument("--once", action="store_true", help="Run a single round and exit.")
    parser.add_argument("--no-api", action="store_true", help="Do not start the status API.")
    return parser.parse_args(argv)


def startup(a) -> tuple[Settings, LocalAccount]:
    overrides = {"selection.mode": a.mode} if a.mode else None
    settings = load_settings(a.config, overrides)

    account = load_account(getpass.getpass("Enter your private key: "))
    log.info("Wallet address: %s", account.address)

    # Fail fast on an unusable address list, before anything is scheduled
    sel = settings.selection
    sequential = sel.mode == C.SelectionMode.SEQUENTIAL
    book = load_address_book(settings.addresses_file, labeled=sequential)
    if sequential or sel.random_excludes_self:
        require_recipients(book, account.address)
    return settings, account


def main(argv=None) -> int:
    setup_logging()
    a = parse_args(argv)
    try:
        settings, account = startup(a)
    except FatalError as e:
        log.critical("FATAL ERROR: %s", e)
        return 1

    led = settings.ledger
    try:
        asyncio.run(probe_rpc(led.rpc_url, led.probe_attempts, led.probe_delay))
    except Exception as e:
        log.critical("FATAL ERROR: RPC endpoint %s unreachable: %s", led.rpc_url, e)
        return 1

    scheduler = build_scheduler(settings, account)
    log.info(
        "Sending to %d %s addresses every %ss",
        settings.selection.count,
        settings.selection.mode,
        settings.schedule.interval,
    )
    api = settings.api.enabled and not a.no_api
    try:
        asyncio.run(serve(scheduler, settings, api=api, max_rounds=1 if a.once else None))
    except KeyboardInterrupt:
        log.info("Interrupted, exiting")
    return 0


if __name__ == "__main__":
    sys.exit(main())
