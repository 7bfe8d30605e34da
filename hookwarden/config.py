"""
Runtime settings and rule configuration loading.

Settings come from environment variables, after a ``.env`` file (if any) has
been loaded. Rule definitions live in a YAML file with a top-level ``rules``
list.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import find_dotenv, load_dotenv

from .errors import ConfigError

DEFAULT_CONFIG_PATH = "hookwarden.yaml"
DEFAULT_LEDGER_PATH = ".hookwarden"
DEFAULT_IDLE_TIMEOUT = 24 * 60 * 60


def load_env() -> None:
    _ = load_dotenv(find_dotenv(usecwd=True))


def _env_number(name: str, default: float, cast=float) -> Any:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


@dataclass
class Settings:
    """
    Runtime settings.

    Attributes:
        config_path: YAML file with rule definitions
        ledger_path: Directory for session ledgers
        idle_timeout: Seconds before an untouched ledger is discarded (0 disables)
        max_workers: Thread pool size for rule evaluation (1 = sequential)
        log_level: Package log level
        log_file: Optional log file (stderr otherwise)
    """
    config_path: str = DEFAULT_CONFIG_PATH
    ledger_path: str = DEFAULT_LEDGER_PATH
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT
    max_workers: int = 1
    log_level: str = "WARNING"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from HOOKWARDEN_* environment variables."""
        load_env()
        return cls(
            config_path=os.getenv("HOOKWARDEN_CONFIG") or DEFAULT_CONFIG_PATH,
            ledger_path=os.getenv("HOOKWARDEN_LEDGER_PATH") or DEFAULT_LEDGER_PATH,
            idle_timeout=_env_number("HOOKWARDEN_IDLE_TIMEOUT", DEFAULT_IDLE_TIMEOUT),
            max_workers=_env_number("HOOKWARDEN_MAX_WORKERS", 1, int),
            log_level=os.getenv("HOOKWARDEN_LOG_LEVEL") or "WARNING",
            log_file=os.getenv("HOOKWARDEN_LOG_FILE") or None,
        )


def load_rule_configs(path: str) -> List[Dict[str, Any]]:
    """
    Read rule definitions from a YAML file.

    Args:
        path: File with a top-level ``rules`` list

    Returns:
        The list of rule configuration mappings, in file order

    Raises:
        ConfigError: If the file is missing, unreadable or malformed
    """
    config_file = Path(path)
    try:
        data = yaml.safe_load(config_file.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigError(f"rule configuration not found: {path}") from e
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot read rule configuration {path}: {e}") from e

    if data is None:
        return []
    if not isinstance(data, dict) or not isinstance(data.get("rules", []), list):
        raise ConfigError(f"{path} must contain a top-level 'rules' list")

    rules = data.get("rules") or []
    base_dir = config_file.parent
    for entry in rules:
        if isinstance(entry, dict):
            _resolve_relative_paths(entry, base_dir)
    return rules


def _resolve_relative_paths(entry: Dict[str, Any], base_dir: Path) -> None:
    """Resolve skills_file / skills_dir parameters relative to the config file."""
    parameters = entry.get("parameters")
    if not isinstance(parameters, dict):
        return
    for key in ("skills_file", "skills_dir"):
        value = parameters.get(key)
        if isinstance(value, str) and not os.path.isabs(value):
            parameters[key] = str(base_dir / value)
