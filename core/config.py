"""Ledger settings.

Reads configuration from environment variables (a ``.env`` file next to
the package is loaded first when present):
- LEDGER_DB_PATH: SQLite file used by ``storage.contracts_db``
- LEDGER_DEFAULT_TAX_RATE: Tax rate (percent) for new contracts
- LEDGER_DEFAULT_CATEGORY: Category used when no view context is given
- LEDGER_TIMELINE_START / LEDGER_TIMELINE_END: Default timeline range (YYYY-MM)
- LEDGER_LOG_LEVEL: Logging level name (INFO, DEBUG, ...)
- LEDGER_LOG_JSON: "1"/"true" to emit JSON logs
"""

import os
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Optional

# Load .env file if it exists
from dotenv import load_dotenv
env_path = Path(__file__).resolve().parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

from pydantic import BaseModel, Field, field_validator, model_validator

from core.models.canonical import Category, DEFAULT_TAX_RATE, validate_month


DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent / "storage" / "ledger.db"
DEFAULT_TIMELINE_START = "2025-01"
DEFAULT_TIMELINE_END = "2026-12"

_TRUTHY = {"1", "true", "yes", "on"}


class LedgerSettings(BaseModel):
    """Runtime configuration for the ledger engine and its collaborators."""
    db_path: Path = DEFAULT_DB_PATH
    default_tax_rate: Decimal = Field(default=Decimal(DEFAULT_TAX_RATE), gt=0)
    default_category: Category = Category.LABOR
    timeline_start: str = DEFAULT_TIMELINE_START
    timeline_end: str = DEFAULT_TIMELINE_END
    log_level: str = "INFO"
    log_json: bool = False

    @field_validator("timeline_start", "timeline_end")
    @classmethod
    def _check_month(cls, value: str) -> str:
        validate_month(value)
        return value.strip()

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.strip().upper()

    @model_validator(mode="after")
    def _check_range(self) -> "LedgerSettings":
        if validate_month(self.timeline_start) > validate_month(self.timeline_end):
            raise ValueError(
                f"LEDGER_TIMELINE_START {self.timeline_start} is after "
                f"LEDGER_TIMELINE_END {self.timeline_end}"
            )
        return self

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "LedgerSettings":
        """Build settings from environment variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        values = {}
        if env.get("LEDGER_DB_PATH"):
            values["db_path"] = Path(env["LEDGER_DB_PATH"])
        if env.get("LEDGER_DEFAULT_TAX_RATE"):
            values["default_tax_rate"] = env["LEDGER_DEFAULT_TAX_RATE"]
        if env.get("LEDGER_DEFAULT_CATEGORY"):
            values["default_category"] = env["LEDGER_DEFAULT_CATEGORY"]
        if env.get("LEDGER_TIMELINE_START"):
            values["timeline_start"] = env["LEDGER_TIMELINE_START"]
        if env.get("LEDGER_TIMELINE_END"):
            values["timeline_end"] = env["LEDGER_TIMELINE_END"]
        if env.get("LEDGER_LOG_LEVEL"):
            values["log_level"] = env["LEDGER_LOG_LEVEL"]
        if env.get("LEDGER_LOG_JSON"):
            values["log_json"] = env["LEDGER_LOG_JSON"].strip().lower() in _TRUTHY
        return cls(**values)


@lru_cache(maxsize=1)
def get_settings() -> LedgerSettings:
    """Process-wide settings, read once from the environment."""
    return LedgerSettings.from_env()
