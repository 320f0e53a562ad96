# src/ultrastake/runtime/sigverify.py

from __future__ import annotations

from typing import Any, Dict, Optional

from ultrastake.crypto.sig import canonical_tx_message, verify_ed25519_signature

Json = Dict[str, Any]


def signatures_required(state: Json) -> bool:
    params = state.get("params") if isinstance(state, dict) else None
    if not isinstance(params, dict):
        return False
    return bool(params.get("require_signatures", False))


def registered_pubkey(state: Json, signer: str) -> Optional[str]:
    accounts = state.get("accounts") if isinstance(state, dict) else None
    if not isinstance(accounts, dict):
        return None
    acct = accounts.get(signer)
    if not isinstance(acct, dict):
        return None
    pk = acct.get("pubkey")
    if isinstance(pk, str) and pk.strip():
        return pk.strip()
    return None


def verify_tx_signature(state: Json, tx: Json) -> bool:
    """Verify tx signature against the signer's registered key.

    Policy:
      - require_signatures off: always True.
      - KEY_REGISTER is self-certifying: it must verify against the key in its
        own payload, and only when the signer has no key yet.
      - otherwise the signer must have a registered key and the sig must verify.

    Pure (no I/O).
    """
    if not isinstance(tx, dict):
        return False

    signer = tx.get("signer")
    if not isinstance(signer, str) or not signer.strip():
        return False

    if not signatures_required(state):
        return True

    sig = tx.get("sig")
    if not isinstance(sig, str) or not sig.strip():
        return False

    tx_type = str(tx.get("tx_type") or "").strip().upper()
    payload = tx.get("payload") if isinstance(tx.get("payload"), dict) else {}

    pubkey = registered_pubkey(state, signer)
    if tx_type == "KEY_REGISTER" and pubkey is None:
        pubkey = payload.get("pubkey") if isinstance(payload.get("pubkey"), str) else None
    if not pubkey:
        return False

    msg = canonical_tx_message(
        tx_type=tx_type,
        signer=signer,
        nonce=int(tx.get("nonce") or 0),
        payload=payload,
    )
    return verify_ed25519_signature(message=msg, sig=sig, pubkey=pubkey)


__all__ = ["registered_pubkey", "signatures_required", "verify_tx_signature"]
