"""Envelope encryption of VM environment variables.

The VMM publishes an X25519 public key per app_id. Each call generates a
fresh ephemeral key pair, uses the raw X25519 shared secret as the
AES-256-GCM key (no KDF; the VMM side derives the key the same way) and
emits:

    ephemeral_public_key (32 bytes) || nonce (12 bytes) || ciphertext+tag

hex-encoded.
"""

from __future__ import annotations

import binascii
import secrets

from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import CryptoError

PUBLIC_KEY_LENGTH = 32
NONCE_LENGTH = 12


def decode_public_key(pubkey_hex: str) -> bytes:
    """Decode a hex public key, accepting an optional 0x prefix.

    Raises:
        CryptoError: If the hex is invalid or does not decode to 32 bytes
    """
    if pubkey_hex.startswith("0x"):
        pubkey_hex = pubkey_hex[2:]

    try:
        raw = binascii.unhexlify(pubkey_hex)
    except ValueError as e:
        raise CryptoError(f"Failed to decode public key hex: {e}") from e

    if len(raw) != PUBLIC_KEY_LENGTH:
        raise CryptoError(
            f"Invalid public key length: expected {PUBLIC_KEY_LENGTH} bytes, got {len(raw)}"
        )
    return raw


def encrypt_env(env_json: str, pubkey_hex: str) -> str:
    """Seal an env-var JSON array for the holder of pubkey_hex.

    Args:
        env_json: JSON array of {"key", "value"} objects
        pubkey_hex: Remote X25519 public key, hex (optionally 0x-prefixed)

    Returns:
        Hex-encoded envelope

    Raises:
        CryptoError: If the key is malformed or encryption fails
    """
    remote_key_bytes = decode_public_key(pubkey_hex)
    plaintext = f'{{"env":{env_json}}}'.encode()

    try:
        remote_key = X25519PublicKey.from_public_bytes(remote_key_bytes)
        ephemeral = X25519PrivateKey.generate()
        shared_secret = ephemeral.exchange(remote_key)
        nonce = secrets.token_bytes(NONCE_LENGTH)
        ciphertext = AESGCM(shared_secret).encrypt(nonce, plaintext, None)
    except ValueError as e:
        raise CryptoError(f"Encryption failed: {e}") from e

    ephemeral_public = ephemeral.public_key().public_bytes_raw()
    return (ephemeral_public + nonce + ciphertext).hex()
