"""Reconciliation engine for the managed validator VM.

One cycle:

    Fetch -> ValidateEnv -> BuildManifest -> Observe -> Decide -> Act -> Commit

The engine state (current compose hash and VM id) is an explicit value:
run_cycle() takes the previous ReconcilerState and returns the next one, or
raises and leaves the caller holding the previous state.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from .config_api import ConfigApiClient
from .envelope import encrypt_env
from .environment import build_env_vars, ensure_required_env, env_vars_json, required_env_keys
from .errors import UpdaterError
from .hashing import app_id_from_hash, compute_compose_hash, hashes_match
from .lifecycle import SleepFn, VmLifecycle
from .manifest import (
    REQUIRED_ENV_KEYS,
    build_allowed_envs,
    build_manifest,
    log_vm_parameters,
    resolve_vm_name,
    serialize_manifest,
    validate_vm_parameters,
)
from .models import ComposeConfig, CreateVmRequest, StatusResponse, VmParameters
from .platform_config import PlatformConfig
from .settings import DEFAULT_VM_NAME
from .vmm import VmmClient

logger = logging.getLogger(__name__)

# VM statuses that always trigger a recreate, whatever the hash says.
DEAD_STATUSES = frozenset({"stopped", "exited", "killed", "error"})


class Decision(str, Enum):
    KEEP = "keep"
    CREATE = "create"
    RECREATE = "recreate"


@dataclass(frozen=True)
class ReconcilerState:
    """State carried between cycles. Empty on process start."""

    current_hash: str | None = None
    vm_id: str | None = None

    @property
    def is_first_run(self) -> bool:
        return self.current_hash is None


@dataclass(frozen=True)
class VmObservation:
    vm_id: str
    status: str
    app_id: str | None


@dataclass(frozen=True)
class DesiredVm:
    """Everything derived from one compose config fetch."""

    config: ComposeConfig
    vm_params: VmParameters
    vm_name: str
    compose_file: str
    compose_hash: str


def find_managed_vm(status: StatusResponse, vm_name: str) -> VmObservation | None:
    """Locate the VM whose name or app_id equals vm_name."""
    for vm in status.vms:
        if vm.id is None:
            continue
        if vm.name == vm_name or vm.app_id == vm_name:
            if vm.app_id is None:
                logger.warning(
                    f"Found VM {vm.id} but appId is missing. VM data: {vm.model_dump_json()}"
                )
            return VmObservation(vm_id=vm.id, status=vm.status, app_id=vm.app_id)
    return None


def decide(observation: VmObservation | None, new_hash: str) -> Decision:
    """Create/Recreate/Keep decision table, evaluated in order."""
    if observation is None:
        logger.info("No existing VM found, will create new one")
        return Decision.CREATE

    if observation.status in DEAD_STATUSES:
        logger.warning(f"VM is in '{observation.status}' state, will recreate")
        return Decision.RECREATE

    if observation.app_id is None:
        logger.warning(
            "VM exists but has no appId (compose hash), will recreate to ensure consistency"
        )
        return Decision.RECREATE

    existing = app_id_from_hash(observation.app_id)
    wanted = app_id_from_hash(new_hash)
    logger.info(f"Comparing compose hashes - existing VM: {existing}, new config: {wanted}")

    if hashes_match(observation.app_id, new_hash):
        return Decision.KEEP

    logger.info(f"VM compose hash mismatch: existing={existing}, new={wanted}, will recreate")
    return Decision.RECREATE


class Reconciler:
    """Keeps the managed VM in sync with the compose config API.

    Example:
        reconciler = Reconciler(config_api, vmm, lifecycle, platform_config_path=path)
        await reconciler.run_forever(interval=5)
    """

    def __init__(
        self,
        config_api: ConfigApiClient,
        vmm: VmmClient,
        lifecycle: VmLifecycle,
        *,
        platform_config_path: str,
        vm_name: str = DEFAULT_VM_NAME,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.config_api = config_api
        self.vmm = vmm
        self.lifecycle = lifecycle
        self.platform_config_path = platform_config_path
        self.vm_name = vm_name
        self.sleep = sleep

    def _load_platform_config(self) -> PlatformConfig:
        platform_config = PlatformConfig.load_or_default(self.platform_config_path)
        logger.info(
            f"Loaded platform config: VMM URL={platform_config.dstack_vmm_url}, "
            f"env vars count={len(platform_config.env or {})}"
        )
        return platform_config

    def build_desired(self, config: ComposeConfig) -> DesiredVm:
        """BuildManifest step: allowed envs, manifest, serialized form and hash."""
        allowed_envs = build_allowed_envs(
            config.provisioning.env_keys, REQUIRED_ENV_KEYS, config.required_env
        )
        logger.info(f"Allowed environment variables: {allowed_envs}")
        logger.info(f"Number of allowed environment variables: {len(allowed_envs)}")

        vm_params = config.provisioning.vm_parameters
        validate_vm_parameters(vm_params)
        log_vm_parameters(config.vm_type, vm_params)

        vm_name = resolve_vm_name(vm_params, config.vm_type)
        manifest = build_manifest(
            config.compose_content,
            config.provisioning.manifest_defaults,
            vm_name,
            allowed_envs,
        )
        compose_file = serialize_manifest(manifest)
        compose_hash = compute_compose_hash(compose_file, vm_params.image)
        logger.info(f"Computed compose hash (image: {vm_params.image}): {compose_hash}")

        return DesiredVm(
            config=config,
            vm_params=vm_params,
            vm_name=vm_name,
            compose_file=compose_file,
            compose_hash=compose_hash,
        )

    async def observe(self) -> VmObservation | None:
        return find_managed_vm(await self.vmm.status(), self.vm_name)

    async def create_vm(self, desired: DesiredVm) -> str:
        """Encrypt the env for the new app_id and create the VM.

        Returns:
            The id of the created VM
        """
        params = desired.vm_params
        logger.info(
            f"Creating new VM with compose hash: {desired.compose_hash} (image: {params.image})"
        )

        platform_config = self._load_platform_config()
        env_vars = build_env_vars(platform_config)

        app_id = app_id_from_hash(desired.compose_hash)
        logger.info(f"Getting encryption key for app_id: {app_id}")
        pubkey_hex = await self.vmm.get_app_env_encrypt_pubkey(app_id)

        encrypted_env = encrypt_env(env_vars_json(env_vars), pubkey_hex)

        validate_vm_parameters(params)
        request = CreateVmRequest(
            name=desired.vm_name,
            image=params.image,
            compose_file=desired.compose_file,
            vcpu=params.vcpu,
            memory=params.memory,
            disk_size=params.disk_size,
            user_config=params.user_config,
            ports=params.ports,
            encrypted_env=encrypted_env,
            hugepages=params.hugepages,
            pin_numa=params.pin_numa,
            stopped=params.stopped,
        )

        # Logged for cross-checking only; a mismatch does not block creation.
        vmm_hash = await self.vmm.get_compose_hash(request)
        logger.info(f"VMM computed compose hash: {vmm_hash}")
        if not hashes_match(vmm_hash, desired.compose_hash):
            logger.warning(
                f"VMM compose hash {app_id_from_hash(vmm_hash)} differs from local {app_id}"
            )

        vm_id = await self.vmm.create_vm(request)
        logger.info(f"VM created with ID: {vm_id}")
        return vm_id

    async def run_cycle(self, state: ReconcilerState) -> ReconcilerState:
        """Run one reconciliation cycle.

        Returns:
            The state to carry into the next cycle

        Raises:
            UpdaterError: Any failure; no state is committed
        """
        config = await self.config_api.fetch_compose_config()

        required = required_env_keys(config)
        if required:
            logger.info(f"Required environment variable keys from API: {required}")
            ensure_required_env(required, self._load_platform_config())

        desired = self.build_desired(config)
        observation = await self.observe()
        decision = decide(observation, desired.compose_hash)

        if decision is Decision.KEEP:
            if state.is_first_run:
                logger.info(
                    f"Existing VM found at startup with status '{observation.status}' and "
                    f"matching compose hash ({app_id_from_hash(desired.compose_hash)}), "
                    "keeping it"
                )
            else:
                logger.info(
                    f"VM compose hash matches ({app_id_from_hash(desired.compose_hash)}), "
                    "no update needed"
                )
            return ReconcilerState(current_hash=desired.compose_hash, vm_id=observation.vm_id)

        if decision is Decision.RECREATE:
            try:
                await self.lifecycle.kill_and_remove_vm(observation.vm_id)
            except UpdaterError as e:
                logger.error(f"Failed to kill/remove VM {observation.vm_id}: {e}")
                raise

        new_vm_id = await self.create_vm(desired)
        logger.info("VM updated successfully!")
        return ReconcilerState(current_hash=desired.compose_hash, vm_id=new_vm_id)

    async def run_forever(self, interval: float, state: ReconcilerState | None = None) -> None:
        """Run cycles back to back, sleeping interval after each one.

        Cycle errors are logged and never stop the loop.
        """
        state = state or ReconcilerState()
        logger.info("Starting validator auto-updater")
        logger.info(f"Polling {self.config_api.url} every {interval}s")

        while True:
            state = await self.run_once(state)
            await self.sleep(interval)

    async def run_once(self, state: ReconcilerState) -> ReconcilerState:
        """Run one cycle, logging failures and keeping the previous state."""
        try:
            return await self.run_cycle(state)
        except UpdaterError as e:
            logger.error(
                f"Update check failed: {e} "
                f"(vm_id={state.vm_id}, current_hash={state.current_hash})"
            )
        except Exception:
            logger.exception("Update check failed with unexpected error")
        return state
