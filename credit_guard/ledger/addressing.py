"""Opaque account-key derivation.

The ledger owns its addressing scheme; the core only needs a stable,
deterministic key per (kind, owner) pair to name accounts in requests.
"""
from __future__ import annotations

import hashlib

_NAMESPACE = b"credit-guard"


def derive_address(*seeds: str | bytes) -> str:
    """Hex key derived from length-prefixed seeds."""
    digest = hashlib.sha256(_NAMESPACE)
    for seed in seeds:
        raw = seed.encode() if isinstance(seed, str) else seed
        digest.update(len(raw).to_bytes(4, "big"))
        digest.update(raw)
    return digest.hexdigest()


def position_address(owner: str) -> str:
    return derive_address("position", owner)


def agent_config_address(owner: str) -> str:
    return derive_address("agent_config", position_address(owner))


def gad_config_address(owner: str) -> str:
    return derive_address("gad_config", position_address(owner))
