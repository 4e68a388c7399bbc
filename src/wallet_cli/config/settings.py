"""Unified settings — CLI flags, env vars, and code defaults in one object.

Priority chain (highest to lowest):
  1. Init kwargs  — CLI flags passed by argparse
  2. Env vars     — ``WALLET_*`` prefix (nested with ``__``)
  3. Code defaults — baked into the models below

``WALLET_DATABASE_PATH`` keeps the name the wallet storage has always
used, so existing databases are picked up unchanged.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

DeviceResponse = Literal["approve", "reject", "ignore", "error"]


class SimulatorConfig(BaseModel):
    """Knobs for the bundled wallet-engine and signing-device simulators."""

    model_config = {"frozen": True}

    initial_balance: int = Field(default=1_000_000, ge=0)
    fee: int = Field(default=0, ge=0)
    sync_step_delay: float = Field(default=0.2, ge=0)
    device_response: DeviceResponse = "approve"
    device_delay: float = Field(default=2.0, ge=0)


class WalletSettings(BaseSettings):
    """Unified settings for the wallet CLI, frozen after construction."""

    model_config = {
        "frozen": True,
        "env_prefix": "WALLET_",
        "env_nested_delimiter": "__",
    }

    database_path: Path = Path("./wallet-cli-database")
    confirmation_timeout: float = Field(default=60.0, gt=0)
    shutdown_timeout: float = Field(default=5.0, gt=0)
    notifications: bool = True

    # --- CLI flags ---
    verbose: bool = False
    log_json: bool = False
    account: str | None = None

    simulator: SimulatorConfig = Field(default_factory=SimulatorConfig)

    @classmethod
    def from_cli(cls, **cli_flags: Any) -> WalletSettings:
        """Construct settings, dropping flags the user did not pass.

        ``None`` values are omitted so environment variables still win
        over argparse defaults.
        """
        overrides = {key: value for key, value in cli_flags.items() if value is not None}
        return cls(**overrides)
