"""Deterministic condition, collection and position identifiers.

Canonical encoding, stable across implementations: each tuple element is tagged
and concatenated. str -> b"s" + 4-byte big-endian length + UTF-8 bytes;
int (>= 0) -> b"i" + 32-byte big-endian unsigned. The first element is a
domain tag. Digest: SHA-256, rendered as 0x + 64 lowercase hex.
"""

from __future__ import annotations

import hashlib

NULL_COLLECTION = "0x" + "00" * 32

# Outcome index sets (bit masks over the two outcome slots)
NO = 0b01
YES = 0b10
OUTCOME_SLOT_COUNT = 2
FULL_INDEX_SET = (1 << OUTCOME_SLOT_COUNT) - 1

_MAX_UINT256 = (1 << 256) - 1


def encode(*parts: str | int) -> bytes:
    """Canonical byte encoding of a tuple of strings and non-negative ints."""
    out = bytearray()
    for part in parts:
        if isinstance(part, bool):
            raise TypeError("bool is not an encodable id component")
        if isinstance(part, int):
            if part < 0 or part > _MAX_UINT256:
                raise ValueError(f"int component out of range: {part}")
            out += b"i" + part.to_bytes(32, "big")
        elif isinstance(part, str):
            raw = part.encode("utf-8")
            out += b"s" + len(raw).to_bytes(4, "big") + raw
        else:
            raise TypeError(f"unsupported id component: {type(part).__name__}")
    return bytes(out)


def hash_tuple(*parts: str | int) -> str:
    return "0x" + hashlib.sha256(encode(*parts)).hexdigest()


def get_condition_id(oracle: str, question_id: str, outcome_slot_count: int) -> str:
    return hash_tuple("condition", oracle, question_id, outcome_slot_count)


def get_collection_id(parent_collection: str, condition_id: str) -> str:
    """Collection scoping positions of condition_id under parent_collection.

    The null parent collapses to the condition id itself, so top-level positions
    are keyed directly by condition.
    """
    if parent_collection == NULL_COLLECTION:
        return condition_id
    return hash_tuple("collection", parent_collection, condition_id)


def get_position_id(collateral: str, collection_id: str, index_set: int) -> str:
    return hash_tuple("position", collateral, collection_id, index_set)

