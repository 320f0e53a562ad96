from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional, Tuple

from ultrastake.runtime.sigverify import signatures_required, verify_tx_signature
from ultrastake.runtime.tx_admission_types import TxEnvelope, TxVerdict
from ultrastake.runtime.tx_schema import validate_payload

Json = Dict[str, Any]


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None:
        return int(default)
    try:
        return int(str(v).strip())
    except Exception:
        return int(default)


def _normalize_jsonable(obj: Any) -> Any:
    if obj is None:
        return None
    if isinstance(obj, (dict, list, str, int, float, bool)):
        return obj
    to_json = getattr(obj, "to_json", None)
    if callable(to_json):
        return to_json()
    model_dump = getattr(obj, "model_dump", None)
    if callable(model_dump):
        return model_dump()
    return obj


def _json_size_bytes(obj: Any) -> int:
    """JSON byte size, or -1 when obj is not serializable."""
    try:
        norm = _normalize_jsonable(obj)
        return len(json.dumps(norm, separators=(",", ":"), ensure_ascii=False, sort_keys=True).encode("utf-8"))
    except (TypeError, ValueError):
        return -1


def _validate_payload_limits(payload: Any) -> Optional[TxVerdict]:
    """Generic payload caps (depth, string size, list length)."""
    max_string_bytes = _env_int("ULTRASTAKE_MAX_TX_STRING_BYTES", 1024)
    max_list_len = _env_int("ULTRASTAKE_MAX_TX_LIST_LEN", 1000)
    max_depth = _env_int("ULTRASTAKE_MAX_TX_NESTING", 4)

    def walk(v: Any, depth: int) -> Optional[Tuple[str, Dict[str, Any]]]:
        if depth > int(max_depth):
            return "payload_too_deep", {"max_depth": int(max_depth)}
        if v is None or isinstance(v, (bool, int, float)):
            return None
        if isinstance(v, str):
            b = len(v.encode("utf-8", errors="ignore"))
            if b > int(max_string_bytes):
                return "string_too_large", {"bytes": int(b), "max_bytes": int(max_string_bytes)}
            return None
        if isinstance(v, list):
            if len(v) > int(max_list_len):
                return "list_too_long", {"len": len(v), "max_len": int(max_list_len)}
            for it in v:
                err = walk(it, depth + 1)
                if err:
                    return err
            return None
        if isinstance(v, dict):
            for kk, vv in v.items():
                if not isinstance(kk, str):
                    return "invalid_key_type", {"key_type": str(type(kk))}
                err = walk(vv, depth + 1)
                if err:
                    return err
            return None
        return "invalid_value_type", {"type": str(type(v))}

    err = walk(payload, 0)
    if err:
        reason, details = err
        return TxVerdict.reject("invalid", reason, details)
    return None


def expected_nonce(state: Json, signer: str) -> int:
    accounts = state.get("accounts") if isinstance(state, dict) else None
    acct = accounts.get(signer) if isinstance(accounts, dict) else None
    if not isinstance(acct, dict):
        return 1
    try:
        return int(acct.get("nonce", 0)) + 1
    except Exception:
        return 1


def admit_tx(tx: Any, state: Json) -> TxVerdict:
    """Decide whether `tx` may be applied against `state`.

    Checks, in order: envelope size, envelope shape, payload caps, payload
    schema, and (when params.require_signatures is on) the per-signer nonce
    and ed25519 signature. Semantic checks stay in the appliers.
    """
    max_tx_bytes = _env_int("ULTRASTAKE_MAX_TX_ENVELOPE_BYTES", 16 * 1024)
    env_size = _json_size_bytes(_normalize_jsonable(tx))
    if env_size > int(max_tx_bytes):
        return TxVerdict.reject(
            "invalid",
            "tx_envelope_exceeds_size_limit",
            {"bytes": int(env_size), "max_bytes": int(max_tx_bytes)},
        )

    try:
        env = TxEnvelope.from_json(tx)
    except (TypeError, ValueError) as e:
        return TxVerdict.reject("invalid", "bad_envelope", {"error": str(e)})

    if not env.tx_type:
        return TxVerdict.reject("invalid", "missing_tx_type", None)
    if not env.signer:
        return TxVerdict.reject("invalid", "missing_signer", None)
    if int(env.nonce) < 0:
        return TxVerdict.reject("invalid", "nonce_must_be_nonnegative", {"nonce": int(env.nonce)})

    payload_verdict = _validate_payload_limits(env.payload)
    if payload_verdict is not None:
        return payload_verdict

    ok, code, reason, details = validate_payload(tx_type=env.tx_type, payload=env.payload)
    if not ok:
        d: Dict[str, Any] = {"tx_type": env.tx_type, "schema_code": code}
        if isinstance(details, dict):
            d.update(details)
        return TxVerdict.reject("invalid", reason, d)

    if signatures_required(state):
        expected = expected_nonce(state, env.signer)
        if int(env.nonce) != expected:
            return TxVerdict.reject("forbidden", "bad_nonce", {"expected": expected, "got": int(env.nonce)})

        if not verify_tx_signature(state, env.to_json()):
            return TxVerdict.reject("forbidden", "bad_signature", {"signer": env.signer, "tx_type": env.tx_type})

    return TxVerdict.admit()


__all__ = ["TxEnvelope", "TxVerdict", "admit_tx", "expected_nonce"]
