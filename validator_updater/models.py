"""Data models for the validator updater.

Desired state comes from the compose config API; the RPC request/response
models describe the subset of the dstack VMM surface the updater uses.
"""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .settings import DEFAULT_VM_NAME

DEFAULT_IMAGE = "dstack-0.5.2"


# ==============================================================================
# Desired state (compose config API)
# ==============================================================================


class PortMapping(BaseModel):
    """Host to VM port forward."""

    protocol: str = Field(default="tcp", description="tcp or udp")
    host_port: int = Field(..., ge=0, le=65535)
    vm_port: int = Field(..., ge=0, le=65535)
    host_address: str | None = Field(default=None, description="Bind address on the host")


class ManifestDefaults(BaseModel):
    """App manifest settings supplied by the config API."""

    manifest_version: int
    name: str | None = Field(default=None, description="Overrides the manifest name")
    runner: str
    kms_enabled: bool = False
    gateway_enabled: bool = False
    local_key_provider_enabled: bool = False
    key_provider_id: str = ""
    public_logs: bool = False
    public_sysinfo: bool = False
    public_tcbinfo: bool = False
    no_instance_id: bool = False
    secure_time: bool = False

    @classmethod
    def default(cls) -> ManifestDefaults:
        """Defaults used when the API omits manifest_defaults entirely."""
        return cls(
            manifest_version=2,
            name=DEFAULT_VM_NAME,
            runner="docker-compose",
            kms_enabled=True,
            gateway_enabled=True,
            public_logs=True,
            public_sysinfo=True,
            public_tcbinfo=True,
        )


class VmParameters(BaseModel):
    """Hardware and launch parameters for the managed VM."""

    name: str | None = None
    image: str
    vcpu: int = Field(..., ge=0)
    memory: int = Field(..., ge=0, description="Memory in MB")
    disk_size: int = Field(..., ge=0, description="Disk size in GB")
    user_config: str = ""
    ports: list[PortMapping] = Field(default_factory=list)
    hugepages: bool = False
    pin_numa: bool = False
    stopped: bool = False

    @classmethod
    def default(cls) -> VmParameters:
        """Defaults used when the API omits vm_parameters entirely."""
        return cls(
            name=DEFAULT_VM_NAME,
            image=DEFAULT_IMAGE,
            vcpu=16,
            memory=16 * 1024,
            disk_size=200,
        )


class ProvisioningConfig(BaseModel):
    env_keys: list[str] = Field(default_factory=list)
    manifest_defaults: ManifestDefaults = Field(default_factory=ManifestDefaults.default)
    vm_parameters: VmParameters = Field(default_factory=VmParameters.default)


class ComposeConfig(BaseModel):
    """Desired compose configuration, one immutable snapshot per fetch."""

    model_config = ConfigDict(frozen=True)

    vm_type: str
    compose_content: str
    description: str | None = None
    updated_at: str
    required_env: list[str] = Field(default_factory=list)
    provisioning: ProvisioningConfig = Field(default_factory=ProvisioningConfig)


# ==============================================================================
# Derived state
# ==============================================================================


class AppManifest(BaseModel):
    """App manifest whose canonical serialization is hashed for drift detection."""

    manifest_version: int
    name: str
    runner: str
    docker_compose_file: str
    kms_enabled: bool
    gateway_enabled: bool
    local_key_provider_enabled: bool
    key_provider_id: str
    public_logs: bool
    public_sysinfo: bool
    public_tcbinfo: bool
    allowed_envs: list[str]
    no_instance_id: bool
    secure_time: bool


class EnvVar(BaseModel):
    key: str
    value: str


# ==============================================================================
# VMM RPC boundary
# ==============================================================================


class VmIdRequest(BaseModel):
    """Request body for StopVm and RemoveVm."""

    id: str


class AppIdRequest(BaseModel):
    """Request body for GetAppEnvEncryptPubKey."""

    app_id: str


class CreateVmRequest(BaseModel):
    """Request body for CreateVm and GetComposeHash."""

    name: str
    image: str
    compose_file: str
    vcpu: int
    memory: int
    disk_size: int
    user_config: str = ""
    ports: list[PortMapping] = Field(default_factory=list)
    encrypted_env: str
    hugepages: bool = False
    pin_numa: bool = False
    stopped: bool = False


class VmInfo(BaseModel):
    """One VM entry from the Status response."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str | None = None
    name: str | None = None
    status: str = "unknown"
    app_id: str | None = Field(default=None, validation_alias=AliasChoices("appId", "app_id"))

    @field_validator("id", "name", "app_id", mode="before")
    @classmethod
    def _str_or_none(cls, value):
        return value if isinstance(value, str) else None

    @field_validator("status", mode="before")
    @classmethod
    def _status_or_unknown(cls, value):
        return value if isinstance(value, str) else "unknown"


class StatusResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    vms: list[VmInfo]


class PublicKeyResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    public_key: str


class ComposeHashResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    hash: str


class CreateVmResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
