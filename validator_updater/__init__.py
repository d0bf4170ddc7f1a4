"""Validator updater - keeps the validator VM in sync with the platform compose config."""

from .envelope import encrypt_env
from .errors import (
    ConfigApiError,
    CryptoError,
    PlatformConfigError,
    ProtocolError,
    RpcError,
    TransientNetworkError,
    UpdaterError,
    ValidationError,
)
from .hashing import app_id_from_hash, canonicalize, compute_compose_hash
from .manifest import build_allowed_envs, build_manifest
from .reconciler import Decision, Reconciler, ReconcilerState, decide

__all__ = [
    # Engine
    "Reconciler",
    "ReconcilerState",
    "Decision",
    "decide",
    # Hashing and manifest
    "canonicalize",
    "compute_compose_hash",
    "app_id_from_hash",
    "build_allowed_envs",
    "build_manifest",
    "encrypt_env",
    # Exceptions
    "UpdaterError",
    "TransientNetworkError",
    "RpcError",
    "ConfigApiError",
    "ValidationError",
    "ProtocolError",
    "CryptoError",
    "PlatformConfigError",
]
__version__ = "0.1.0"
