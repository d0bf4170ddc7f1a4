"""App manifest construction.

allowed_envs feeds the compose hash, so it is always sorted and
deduplicated. Only keys the config API knows about may appear in it: extra
local env keys would change the hash the platform expects.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable

from .errors import ValidationError
from .models import AppManifest, ManifestDefaults, VmParameters

logger = logging.getLogger(__name__)

VMM_URL_ENV_KEY = "DSTACK_VMM_URL"

# Keys the platform API always expects in allowed_envs.
REQUIRED_ENV_KEYS = (VMM_URL_ENV_KEY, "HOTKEY_PASSPHRASE", "VALIDATOR_BASE_URL")


def build_allowed_envs(
    env_keys: Iterable[str],
    fixed_keys: Iterable[str] = REQUIRED_ENV_KEYS,
    required_env: Iterable[str] = (),
) -> list[str]:
    """Union the provisioning env keys, fixed keys and required_env keys."""
    allowed = set(env_keys)

    for key in fixed_keys:
        if key not in allowed:
            logger.info(f"Adding missing required env key: {key}")
            allowed.add(key)

    for key in required_env:
        if key not in allowed:
            logger.info(f"Adding missing required_env key from compose config: {key}")
            allowed.add(key)

    return sorted(allowed)


def resolve_vm_name(params: VmParameters, vm_type: str) -> str:
    """VM parameter name if non-empty, else the compose vm_type."""
    return params.name if params.name else vm_type


def build_manifest(
    compose_content: str,
    defaults: ManifestDefaults,
    vm_name: str,
    allowed_envs: list[str],
) -> AppManifest:
    return AppManifest(
        manifest_version=defaults.manifest_version,
        name=defaults.name if defaults.name is not None else vm_name,
        runner=defaults.runner,
        docker_compose_file=compose_content,
        kms_enabled=defaults.kms_enabled,
        gateway_enabled=defaults.gateway_enabled,
        local_key_provider_enabled=defaults.local_key_provider_enabled,
        key_provider_id=defaults.key_provider_id,
        public_logs=defaults.public_logs,
        public_sysinfo=defaults.public_sysinfo,
        public_tcbinfo=defaults.public_tcbinfo,
        allowed_envs=list(allowed_envs),
        no_instance_id=defaults.no_instance_id,
        secure_time=defaults.secure_time,
    )


def serialize_manifest(manifest: AppManifest) -> str:
    """Compact, key-sorted JSON sent to the VMM as compose_file."""
    return json.dumps(
        manifest.model_dump(), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def validate_vm_parameters(params: VmParameters) -> None:
    if params.vcpu == 0:
        raise ValidationError("Validator VM configuration must specify at least one vCPU")
    if params.memory == 0:
        raise ValidationError("Validator VM configuration must specify memory in MB (> 0)")
    if params.disk_size == 0:
        raise ValidationError("Validator VM configuration must specify disk_size in GB (> 0)")


def log_vm_parameters(vm_type: str, params: VmParameters) -> None:
    logger.info(
        f"Validator VM hardware spec resolved: vm_type={vm_type}, image={params.image}, "
        f"vcpu={params.vcpu}, memory_mb={params.memory}, disk_gb={params.disk_size}"
    )
