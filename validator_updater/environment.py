"""Environment variables delivered (encrypted) to the validator VM.

Keys come from the compose config API; values come only from the local
platform config.
"""

from __future__ import annotations

import json
import logging

from .errors import ValidationError
from .manifest import VMM_URL_ENV_KEY
from .models import ComposeConfig, EnvVar
from .platform_config import DEFAULT_GUEST_VMM_URL, PlatformConfig

logger = logging.getLogger(__name__)


def required_env_keys(config: ComposeConfig) -> list[str]:
    """required_env followed by any provisioning env_keys not already listed."""
    keys = list(config.required_env)
    for key in config.provisioning.env_keys:
        if key not in keys:
            keys.append(key)
    return keys


def build_env_vars(platform_config: PlatformConfig) -> list[EnvVar]:
    """Platform config env entries first, then DSTACK_VMM_URL unless already set."""
    env_vars = [EnvVar(key=key, value=value) for key, value in (platform_config.env or {}).items()]

    if not any(env.key == VMM_URL_ENV_KEY for env in env_vars):
        env_vars.append(
            EnvVar(
                key=VMM_URL_ENV_KEY,
                value=platform_config.dstack_vmm_url or DEFAULT_GUEST_VMM_URL,
            )
        )

    logger.info(f"Built {len(env_vars)} environment variables for VM from platform config")
    return env_vars


def env_vars_json(env_vars: list[EnvVar]) -> str:
    return json.dumps(
        [env.model_dump() for env in env_vars], separators=(",", ":"), ensure_ascii=False
    )


def missing_env_keys(required: list[str], platform_config: PlatformConfig) -> list[str]:
    configured = set((platform_config.env or {}).keys())
    configured.update(env.key for env in build_env_vars(platform_config))
    return [key for key in required if key not in configured]


def ensure_required_env(required: list[str], platform_config: PlatformConfig) -> None:
    """Raise ValidationError if any required key has no local value."""
    if not required:
        return

    missing = missing_env_keys(required, platform_config)
    if missing:
        logger.error(f"Missing values for required environment variable keys: {missing}")
        raise ValidationError(
            "Missing values for required environment variable keys: "
            f"{', '.join(missing)}. Please set them with "
            "'validator-updater config set-env <key> <value>'"
        )
