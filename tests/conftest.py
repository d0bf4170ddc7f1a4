"""Pytest configuration and fixtures for validator updater tests."""

import json
from unittest.mock import AsyncMock

import pytest
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from validator_updater.config_api import ConfigApiClient
from validator_updater.models import ComposeConfig, StatusResponse
from validator_updater.vmm import VmmClient

COMPOSE_CONTENT = "services:\n  validator:\n    image: platform/validator:latest\n"


def make_compose_payload(**overrides) -> dict:
    """Compose config API payload with explicit provisioning."""
    payload = {
        "vm_type": "validator_vm",
        "compose_content": COMPOSE_CONTENT,
        "description": "Validator VM",
        "updated_at": "2025-01-01T00:00:00Z",
        "required_env": [],
        "provisioning": {
            "env_keys": ["HOTKEY_PASSPHRASE", "VALIDATOR_BASE_URL"],
            "manifest_defaults": {
                "manifest_version": 2,
                "name": "validator_vm",
                "runner": "docker-compose",
                "kms_enabled": True,
                "gateway_enabled": True,
                "public_logs": True,
                "public_sysinfo": True,
                "public_tcbinfo": True,
            },
            "vm_parameters": {
                "name": "validator_vm",
                "image": "dstack-0.5.2",
                "vcpu": 4,
                "memory": 8192,
                "disk_size": 100,
                "ports": [{"protocol": "tcp", "host_port": 8080, "vm_port": 8080}],
            },
        },
    }
    payload.update(overrides)
    return payload


def make_compose_config(**overrides) -> ComposeConfig:
    return ComposeConfig.model_validate(make_compose_payload(**overrides))


def make_status(*vms: dict) -> StatusResponse:
    return StatusResponse.model_validate({"vms": list(vms)})


@pytest.fixture
def platform_config_path(tmp_path):
    """Platform config with values for the default required keys."""
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "dstack_vmm_url": "http://10.0.2.2:10300/",
                "env": {
                    "HOTKEY_PASSPHRASE": "correct horse",
                    "VALIDATOR_BASE_URL": "https://validator.example.com",
                },
            }
        )
    )
    return path


@pytest.fixture
def vmm_private_key():
    return X25519PrivateKey.generate()


@pytest.fixture
def vmm(vmm_private_key):
    """VmmClient mock; no VMs running and a real encryption key."""
    client = AsyncMock(spec=VmmClient)
    client.status.return_value = make_status()
    client.get_app_env_encrypt_pubkey.return_value = (
        vmm_private_key.public_key().public_bytes_raw().hex()
    )
    client.get_compose_hash.return_value = "0" * 64
    client.create_vm.return_value = "vm-new"
    return client


@pytest.fixture
def config_api():
    api = AsyncMock(spec=ConfigApiClient)
    api.url = "https://api.test/config/compose/validator_vm"
    api.fetch_compose_config.return_value = make_compose_config()
    return api


@pytest.fixture
def decrypt_envelope():
    """Decrypt an envelope produced by encrypt_env with the matching private key."""

    def _decrypt(envelope_hex: str, private_key: X25519PrivateKey) -> bytes:
        raw = bytes.fromhex(envelope_hex)
        ephemeral = X25519PublicKey.from_public_bytes(raw[:32])
        nonce = raw[32:44]
        shared_secret = private_key.exchange(ephemeral)
        return AESGCM(shared_secret).decrypt(nonce, raw[44:], None)

    return _decrypt
