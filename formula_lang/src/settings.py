"""
Runtime configuration for formula sessions.

Defaults are built in; a few can be overridden from the environment:

    FORMULA_SKIP_NIL_POINTER_CHECK=1   lenient evaluation (missing names -> None)
    FORMULA_LOG_LEVEL=DEBUG            level used by configure_logging()
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field, replace
from functools import lru_cache
from typing import IO, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

ENV_PREFIX = "FORMULA_"

_TRUTHY = ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Global configuration for formula_lang."""

    # Strict mode raises on missing variables / functions
    skip_nil_pointer_check: bool = False

    # Variable names searched, in order, for the bar timestamps
    datetime_keys: Tuple[str, ...] = ("dateTime", "TS", "Ts", "date", "Date")
    default_datetime_key: str = "dateTime"

    # Short names registered by FormulaExecutor.set_var_name_alias()
    default_aliases: Dict[str, str] = field(default_factory=lambda: {
        "OPEN": "O",
        "HIGH": "H",
        "LOW": "L",
        "CLOSE": "C",
        "VOLUME": "V",
    })

    # DataFrame column (lowercase) -> formula variable name
    ohlcv_columns: Dict[str, str] = field(default_factory=lambda: {
        "open": "OPEN",
        "high": "HIGH",
        "low": "LOW",
        "close": "CLOSE",
        "volume": "VOLUME",
    })

    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> "Settings":
        settings = cls()
        skip = os.environ.get(f"{ENV_PREFIX}SKIP_NIL_POINTER_CHECK")
        if skip is not None:
            settings.skip_nil_pointer_check = skip.strip().lower() in _TRUTHY
        level = os.environ.get(f"{ENV_PREFIX}LOG_LEVEL")
        if level:
            settings.log_level = level.strip().upper()
        return settings

    def copy(self) -> "Settings":
        """Copy with its own alias and column maps."""
        return replace(
            self,
            default_aliases=dict(self.default_aliases),
            ohlcv_columns=dict(self.ohlcv_columns),
        )


@lru_cache
def get_settings() -> Settings:
    """Get singleton settings instance."""
    return Settings.from_env()


def reload_settings() -> Settings:
    get_settings.cache_clear()
    return get_settings()


def configure_logging(level: Optional[str] = None, stream: Optional[IO[str]] = None) -> logging.Logger:
    """
    Send formula_lang tracing to `stream` (stderr by default).

    The package logs through the standard `logging` module and stays silent
    until a host calls this or configures logging itself.
    """
    pkg_logger = logging.getLogger("formula_lang")
    for handler in list(pkg_logger.handlers):
        if getattr(handler, "_formula_lang", False):
            pkg_logger.removeHandler(handler)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    handler._formula_lang = True  # type: ignore[attr-defined]
    pkg_logger.addHandler(handler)
    pkg_logger.setLevel((level or get_settings().log_level).upper())
    logger.debug("Logging configured at %s", pkg_logger.level)
    return pkg_logger
