import os
import tomllib
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path

from web3 import Web3

import autosend.constants as C
from autosend.errors import ConfigError

pkg_root = Path(__file__).parent
config_file = pkg_root / "config.toml"


def _flag(section: dict, dotted: str, default: bool) -> bool:
    value = section.get(dotted.split(".", 1)[1], default)
    if not isinstance(value, bool):
        raise ConfigError(f"{dotted} must be true or false, got {value!r}")
    return value


@dataclass(frozen=True, slots=True)
class LedgerSettings:
    rpc_url: str
    symbol: str
    amount: str
    gas_limit: int
    receipt_timeout: float
    receipt_poll_interval: float
    probe_attempts: int
    probe_delay: float

    @property
    def amount_wei(self) -> int:
        return Web3.to_wei(Decimal(self.amount), "ether")


@dataclass(frozen=True, slots=True)
class ScheduleSettings:
    interval: float
    retry_interval: float
    batch_size: int
    transfer_delay: float
    batch_delay: float
    max_attempts: int
    retry_delay: float
    transient_signatures: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class SelectionSettings:
    mode: C.SelectionMode
    count: int
    random_excludes_self: bool


@dataclass(frozen=True, slots=True)
class ApiSettings:
    enabled: bool
    host: str
    port: int


@dataclass(frozen=True, slots=True)
class Settings:
    ledger: LedgerSettings
    schedule: ScheduleSettings
    selection: SelectionSettings
    api: ApiSettings
    addresses_file: Path
    cursor_file: Path

    @classmethod
    def from_dict(cls, cfg: dict) -> "Settings":
        try:
            led, sch, sel, api, files = (cfg[k] for k in ("ledger", "schedule", "selection", "api", "files"))
            ledger = LedgerSettings(
                rpc_url=os.getenv("RPC_URL", led["rpc_url"]),
                symbol=led.get("symbol", "ETH"),
                amount=str(led["amount"]),
                gas_limit=int(led.get("gas_limit", C.TRANSFER_GAS)),
                receipt_timeout=float(led.get("receipt_timeout", 120.0)),
                receipt_poll_interval=float(led.get("receipt_poll_interval", 2.0)),
                probe_attempts=int(led.get("probe_attempts", 10)),
                probe_delay=float(led.get("probe_delay", 3.0)),
            )
            schedule = ScheduleSettings(
                interval=float(sch["interval"]),
                retry_interval=float(sch["retry_interval"]),
                batch_size=int(sch["batch_size"]),
                transfer_delay=float(sch["transfer_delay"]),
                batch_delay=float(sch["batch_delay"]),
                max_attempts=int(sch["max_attempts"]),
                retry_delay=float(sch["retry_delay"]),
                transient_signatures=tuple(sch.get("transient_signatures", C.TRANSIENT_SIGNATURES)),
            )
            selection = SelectionSettings(
                mode=C.SelectionMode(sel["mode"]),
                count=int(sel["count"]),
                random_excludes_self=_flag(sel, "selection.random_excludes_self", False),
            )
            api_settings = ApiSettings(
                enabled=_flag(api, "api.enabled", False),
                host=api.get("host", "127.0.0.1"),
                port=int(api.get("port", 8000)),
            )
            settings = cls(
                ledger=ledger,
                schedule=schedule,
                selection=selection,
                api=api_settings,
                addresses_file=Path(files["addresses"]),
                cursor_file=Path(files["cursor"]),
            )
        except KeyError as e:
            raise ConfigError(f"Missing config key: {e}") from e
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Bad config value: {e}") from e
        settings.validate()
        return settings

    def validate(self) -> None:
        s = self.schedule
        if s.batch_size < 1:
            raise ConfigError("schedule.batch_size must be at least 1")
        if s.max_attempts < 1:
            raise ConfigError("schedule.max_attempts must be at least 1")
        if min(s.interval, s.retry_interval, s.transfer_delay, s.batch_delay, s.retry_delay) < 0:
            raise ConfigError("schedule delays must be non-negative")
        if self.selection.count < 0:
            raise ConfigError("selection.count must be non-negative")
        try:
            amount = self.ledger.amount_wei
        except (InvalidOperation, ValueError) as e:
            raise ConfigError(f"ledger.amount is not a number: {self.ledger.amount!r}") from e
        if amount <= 0:
            raise ConfigError("ledger.amount must be positive")


def load_settings(path: str | Path | None = None, overrides: dict | None = None) -> Settings:
    path = Path(path or os.getenv("AUTOSEND_CONFIG", config_file))
    try:
        cfg = tomllib.loads(path.read_text())
    except OSError as e:
        raise ConfigError(f"Could not read config {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e
    for dotted, value in (overrides or {}).items():
        section, key = dotted.split(".", 1)
        cfg.setdefault(section, {})[key] = value
    return Settings.from_dict(cfg)
