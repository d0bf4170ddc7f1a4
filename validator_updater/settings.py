"""Env-var backed settings for the validator updater.

Resolution order: env var > default.
All settings are defined in SETTING_DEFS.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_API_URL = "https://api.platform.network/config/compose/validator_vm"
DEFAULT_VMM_URL = "http://localhost:10300"
DEFAULT_PLATFORM_CONFIG_PATH = "/etc/platform-validator/config.json"
DEFAULT_VM_NAME = "validator_vm"


@dataclass(frozen=True)
class SettingDef:
    """Definition of a single setting."""

    key: str
    env_var: str
    default: str
    description: str
    group: str  # e.g. "vmm", "updater", "platform"


# ── Registry ─────────────────────────────────────────────────────────────────

SETTING_DEFS: dict[str, SettingDef] = {}


def _reg(key: str, env_var: str, default: str, description: str, group: str):
    SETTING_DEFS[key] = SettingDef(key, env_var, default, description, group)


# VMM
_reg("vmm.url", "VMM_URL", DEFAULT_VMM_URL, "dstack VMM base URL for RPC calls", "vmm")
_reg(
    "vmm.http_timeout_seconds",
    "VMM_HTTP_TIMEOUT",
    "10",
    "HTTP timeout for VMM and config API calls",
    "vmm",
)
_reg(
    "vmm.stop_timeout_seconds",
    "VM_STOP_TIMEOUT",
    "60",
    "Upper bound on a StopVm call before it is abandoned",
    "vmm",
)
_reg(
    "vmm.stop_settle_seconds",
    "VM_STOP_SETTLE",
    "5",
    "Seconds to wait after a successful StopVm",
    "vmm",
)
_reg(
    "vmm.remove_grace_seconds",
    "VM_REMOVE_GRACE",
    "2",
    "Seconds to wait between stop and the first RemoveVm attempt",
    "vmm",
)
_reg("vmm.remove_attempts", "VM_REMOVE_ATTEMPTS", "3", "RemoveVm attempts before giving up", "vmm")
_reg(
    "vmm.remove_retry_delay_seconds",
    "VM_REMOVE_RETRY_DELAY",
    "3",
    "Fixed delay between RemoveVm attempts",
    "vmm",
)

# Updater
_reg(
    "config_api.url",
    "COMPOSE_CONFIG_URL",
    DEFAULT_CONFIG_API_URL,
    "Compose config API endpoint",
    "updater",
)
_reg(
    "updater.poll_interval_seconds",
    "POLL_INTERVAL",
    "5",
    "Seconds to sleep after each reconciliation cycle",
    "updater",
)
_reg("updater.vm_name", "VALIDATOR_VM_NAME", DEFAULT_VM_NAME, "Name of the managed VM", "updater")
_reg("logging.level", "LOG_LEVEL", "info", "Log level: debug, info, warning, error", "updater")

# Platform
_reg(
    "platform.config_path",
    "PLATFORM_CONFIG_PATH",
    DEFAULT_PLATFORM_CONFIG_PATH,
    "Path of the persisted platform config JSON",
    "platform",
)


# ── Accessors ────────────────────────────────────────────────────────────────


def get_setting(key: str) -> str:
    """Get a setting value.

    Resolution: env var (non-empty) > default.
    Raises KeyError for unknown keys.
    """
    defn = SETTING_DEFS.get(key)
    if defn is None:
        raise KeyError(f"Unknown setting: {key}")

    env_val = os.environ.get(defn.env_var, "")
    if env_val:
        return env_val

    return defn.default


def get_setting_int(key: str, fallback: int | None = None) -> int:
    raw = get_setting(key)
    try:
        return int(raw)
    except (ValueError, TypeError):
        if fallback is not None:
            return fallback
        raise


def get_setting_float(key: str, fallback: float | None = None) -> float:
    raw = get_setting(key)
    try:
        return float(raw)
    except (ValueError, TypeError):
        if fallback is not None:
            return fallback
        raise


def get_setting_source(key: str) -> str:
    defn = SETTING_DEFS.get(key)
    if defn is None:
        raise KeyError(f"Unknown setting: {key}")

    if os.environ.get(defn.env_var, ""):
        return "env"

    return "default"


def list_settings(group: str | None = None) -> list[dict]:
    result = []
    for defn in SETTING_DEFS.values():
        if group and defn.group != group:
            continue
        result.append(
            {
                "key": defn.key,
                "value": get_setting(defn.key),
                "source": get_setting_source(defn.key),
                "description": defn.description,
                "group": defn.group,
                "env_var": defn.env_var,
                "default": defn.default,
            }
        )
    return result


def log_settings_sources() -> None:
    for entry in list_settings():
        logger.info(f"Setting {entry['key']}: source={entry['source']}, value={entry['value']}")


# ── Snapshot ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class UpdaterSettings:
    """Resolved settings for one updater process."""

    vmm_url: str
    config_api_url: str
    platform_config_path: str
    vm_name: str
    poll_interval: float
    http_timeout: float
    stop_timeout: float
    stop_settle: float
    remove_grace: float
    remove_attempts: int
    remove_retry_delay: float
    log_level: str

    @classmethod
    def from_env(cls) -> UpdaterSettings:
        return cls(
            vmm_url=get_setting("vmm.url"),
            config_api_url=get_setting("config_api.url"),
            platform_config_path=get_setting("platform.config_path"),
            vm_name=get_setting("updater.vm_name"),
            poll_interval=get_setting_float("updater.poll_interval_seconds", 5.0),
            http_timeout=get_setting_float("vmm.http_timeout_seconds", 10.0),
            stop_timeout=get_setting_float("vmm.stop_timeout_seconds", 60.0),
            stop_settle=get_setting_float("vmm.stop_settle_seconds", 5.0),
            remove_grace=get_setting_float("vmm.remove_grace_seconds", 2.0),
            remove_attempts=max(1, get_setting_int("vmm.remove_attempts", 3)),
            remove_retry_delay=get_setting_float("vmm.remove_retry_delay_seconds", 3.0),
            log_level=get_setting("logging.level").lower(),
        )
