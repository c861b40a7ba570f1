"""TOML configuration loader for the POS client."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


@dataclass
class RemoteConfig:
    base_url: str = "http://localhost:3000"
    timeout: float = 10.0


@dataclass
class StoreConfig:
    path: str = "~/.config/tablepos/pos.db"


@dataclass
class DeductionConfig:
    grace_period_seconds: float = 120.0
    scan_interval_seconds: float = 10.0


@dataclass
class OrdersConfig:
    completed_ttl_minutes: int = 30
    self_service: bool = False


@dataclass
class BillingConfig:
    tax_rate: float = 0.05
    currency: str = "INR"


@dataclass
class PosConfig:
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    deduction: DeductionConfig = field(default_factory=DeductionConfig)
    orders: OrdersConfig = field(default_factory=OrdersConfig)
    billing: BillingConfig = field(default_factory=BillingConfig)


def load_config(path: str | Path | None = None) -> PosConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    The API base URL and database path can be overridden via environment
    variables.

    Raises:
        ValueError: If the scan interval is not shorter than the grace
            period, or the tax rate is negative.
    """
    raw: dict = {}

    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    rmt = raw.get("remote", {})
    sto = raw.get("store", {})
    ded = raw.get("deduction", {})
    ords = raw.get("orders", {})
    bil = raw.get("billing", {})

    # Resolve endpoints: environment variable → config file → default
    base_url = os.environ.get("TABLEPOS_API_BASE_URL", "") or rmt.get(
        "base_url", "http://localhost:3000"
    )
    db_path = os.environ.get("TABLEPOS_DB_PATH", "") or sto.get(
        "path", "~/.config/tablepos/pos.db"
    )

    config = PosConfig(
        remote=RemoteConfig(
            base_url=base_url.rstrip("/"),
            timeout=float(rmt.get("timeout", 10.0)),
        ),
        store=StoreConfig(path=db_path),
        deduction=DeductionConfig(
            grace_period_seconds=float(ded.get("grace_period_seconds", 120.0)),
            scan_interval_seconds=float(ded.get("scan_interval_seconds", 10.0)),
        ),
        orders=OrdersConfig(
            completed_ttl_minutes=int(ords.get("completed_ttl_minutes", 30)),
            self_service=bool(ords.get("self_service", False)),
        ),
        billing=BillingConfig(
            tax_rate=float(bil.get("tax_rate", 0.05)),
            currency=bil.get("currency", "INR"),
        ),
    )
    _validate(config)
    return config


def _validate(config: PosConfig) -> None:
    ded = config.deduction
    if ded.scan_interval_seconds <= 0:
        raise ValueError("deduction.scan_interval_seconds must be positive")
    if ded.scan_interval_seconds >= ded.grace_period_seconds:
        raise ValueError(
            "deduction.scan_interval_seconds must be shorter than "
            "deduction.grace_period_seconds"
        )
    if config.billing.tax_rate < 0:
        raise ValueError("billing.tax_rate must not be negative")
