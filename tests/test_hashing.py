"""Tests for canonical JSON hashing."""

import hashlib
import json

from validator_updater.hashing import (
    app_id_from_hash,
    canonicalize,
    compute_compose_hash,
    hashes_match,
)


def test_canonicalize_sorts_nested_keys_and_keeps_array_order():
    text = '{"b": 1, "a": {"z": [3, 1, 2], "y": null}}'
    assert canonicalize(text) == '{"a":{"y":null,"z":[3,1,2]},"b":1}'


def test_canonicalize_keeps_non_ascii_characters():
    assert canonicalize('{"name": "välidator"}') == '{"name":"välidator"}'


def test_hash_is_key_order_independent():
    doc = {"manifest_version": 2, "name": "validator_vm", "allowed_envs": ["A", "B"]}
    permuted = dict(reversed(list(doc.items())))
    assert json.dumps(doc) != json.dumps(permuted)

    assert compute_compose_hash(json.dumps(doc), "img") == compute_compose_hash(
        json.dumps(permuted), "img"
    )


def test_hash_matches_sha256_of_canonical_form_and_image():
    text = '{"b":2,"a":1}'
    expected = hashlib.sha256(b'{"a":1,"b":2}' + b"\0" + b"dstack-0.5.2").hexdigest()
    assert compute_compose_hash(text, "dstack-0.5.2") == expected


def test_hash_changes_with_content():
    base = compute_compose_hash('{"allowed_envs":["A"]}', "img")
    assert base != compute_compose_hash('{"allowed_envs":["A","B"]}', "img")
    assert base != compute_compose_hash('{"allowed_envs":["B"]}', "img")


def test_hash_changes_with_image_only():
    text = '{"name":"validator_vm"}'
    assert compute_compose_hash(text, "dstack-0.5.2") != compute_compose_hash(
        text, "dstack-0.5.3"
    )


def test_malformed_json_falls_back_to_raw_text():
    raw = '{"name": "validator_vm",'
    expected = hashlib.sha256(raw.encode() + b"\0" + b"img").hexdigest()
    assert compute_compose_hash(raw, "img") == expected


def test_app_id_is_first_40_hex_chars():
    digest = compute_compose_hash("{}", "img")
    assert len(digest) == 64
    assert app_id_from_hash(digest) == digest[:40]


def test_hashes_match_compares_truncated_values():
    digest = compute_compose_hash("{}", "img")
    assert hashes_match(digest[:40], digest)
    assert hashes_match(digest, digest[:40] + "f" * 24)
    assert not hashes_match("0" * 40, digest)
