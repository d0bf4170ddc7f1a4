"""Deterministic hashing of app manifests.

The compose hash is SHA-256 over the canonical JSON of the serialized
manifest, a NUL separator and the image reference. The VMM identifies
VMs by the first 40 hex characters of that digest (the app_id).
"""

from __future__ import annotations

import hashlib
import json
import logging

logger = logging.getLogger(__name__)

APP_ID_LENGTH = 40


def canonicalize(json_text: str) -> str:
    """Re-serialize JSON with every object's keys sorted.

    Arrays keep their order and scalars are unchanged, so two documents with
    the same key/value pairs in any key order produce the same string.

    Raises:
        ValueError: If json_text is not valid JSON
    """
    value = json.loads(json_text)
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_compose_hash(serialized_manifest: str, image: str) -> str:
    """Hash a serialized manifest together with its image reference.

    Malformed JSON is hashed as-is, in which case the result depends on the
    source key order.
    """
    try:
        normalized = canonicalize(serialized_manifest)
    except ValueError as e:
        logger.warning(f"Manifest is not valid JSON, hashing raw text: {e}")
        normalized = serialized_manifest

    hasher = hashlib.sha256()
    hasher.update(normalized.encode("utf-8"))
    hasher.update(b"\0")
    hasher.update(image.encode("utf-8"))
    return hasher.hexdigest()


def app_id_from_hash(compose_hash: str) -> str:
    """Truncate a compose hash to the app_id used by the VMM."""
    return compose_hash[:APP_ID_LENGTH]


def hashes_match(existing_app_id: str, compose_hash: str) -> bool:
    return app_id_from_hash(existing_app_id) == app_id_from_hash(compose_hash)
