"""Configuration loading for the governance hooks."""

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from governance_hooks.constants import (
    DEFAULT_APPROVAL_TIMEOUT_S,
    DEFAULT_INTENTS_PATH,
    DEFAULT_LEDGER_PATH,
    DEFAULT_LEDGER_RETRIES,
    DEFAULT_MODEL_IDENTIFIER,
)


@dataclass
class Config:
    """Application configuration loaded from environment."""

    workspace: Path
    intents_path: str = DEFAULT_INTENTS_PATH
    ledger_path: str = DEFAULT_LEDGER_PATH
    strict_intents: bool = False
    approval_timeout_s: float = DEFAULT_APPROVAL_TIMEOUT_S
    approval_url: Optional[str] = None
    ledger_retries: int = DEFAULT_LEDGER_RETRIES
    model_identifier: str = DEFAULT_MODEL_IDENTIFIER
    log_level: str = "INFO"


class ConfigError(Exception):
    """Raised when configuration values are invalid."""
    pass


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean (true/false), got: {raw!r}")


def _parse_number(name: str, raw: str, cast, minimum):
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a {cast.__name__}, got: {raw!r}")
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got: {value}")
    return value


def load_config(workspace: Optional[str] = None) -> Config:
    """
    Load configuration from environment variables (and a .env file, if any).

    Args:
        workspace: Overrides GOVERNANCE_WORKSPACE when given.

    Returns:
        Config with every field resolved to a concrete value.

    Raises:
        ConfigError: If a variable is set to an unparseable value.
    """
    load_dotenv()

    env = os.environ
    root = workspace or env.get("GOVERNANCE_WORKSPACE") or os.getcwd()

    log_level = env.get("GOVERNANCE_LOG_LEVEL", "INFO").upper()
    if log_level not in _LOG_LEVELS:
        raise ConfigError(f"GOVERNANCE_LOG_LEVEL is not a logging level: {log_level!r}")

    return Config(
        workspace=Path(root).expanduser().resolve(),
        intents_path=env.get("GOVERNANCE_INTENTS_PATH") or DEFAULT_INTENTS_PATH,
        ledger_path=env.get("GOVERNANCE_LEDGER_PATH") or DEFAULT_LEDGER_PATH,
        strict_intents=_parse_bool("GOVERNANCE_STRICT_INTENTS", env.get("GOVERNANCE_STRICT_INTENTS", "false")),
        approval_timeout_s=_parse_number(
            "GOVERNANCE_APPROVAL_TIMEOUT_S",
            env.get("GOVERNANCE_APPROVAL_TIMEOUT_S", str(DEFAULT_APPROVAL_TIMEOUT_S)),
            float,
            0.0,
        ),
        approval_url=env.get("GOVERNANCE_APPROVAL_URL") or None,
        ledger_retries=_parse_number(
            "GOVERNANCE_LEDGER_RETRIES",
            env.get("GOVERNANCE_LEDGER_RETRIES", str(DEFAULT_LEDGER_RETRIES)),
            int,
            1,
        ),
        model_identifier=env.get("GOVERNANCE_MODEL_ID") or DEFAULT_MODEL_IDENTIFIER,
        log_level=log_level,
    )


def configure_logging(level: str = "INFO") -> None:
    """Install a single stderr handler on the package logger (idempotent)."""
    logger = logging.getLogger("governance_hooks")
    logger.setLevel(level)
    if getattr(logger, "_governance_configured", False):
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    ))
    logger.addHandler(handler)
    setattr(logger, "_governance_configured", True)
