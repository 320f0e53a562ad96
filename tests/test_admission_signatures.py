from __future__ import annotations

import pytest

from conftest import E, tx
from ultrastake.crypto.sig import generate_keypair, sign_tx_envelope_dict
from ultrastake.runtime.errors import AuthorizationError, ValidationError
from ultrastake.runtime.tx_admission import admit_tx, expected_nonce


@pytest.fixture
def keys():
    return {name: generate_keypair() for name in ("user1", "user2", "mallory")}


@pytest.fixture
def signed_engine(make_engine, keys):
    return make_engine(require_signatures=True, keys={"user1": keys["user1"][1]})


def _signed(keys, who: str, t: dict, as_key: str = "") -> dict:
    return sign_tx_envelope_dict(tx=t, privkey=keys[as_key or who][0])


def test_signed_tx_is_admitted_once(signed_engine, keys) -> None:
    t = _signed(keys, "user1", tx("TOKEN_TRANSFER", "user1", nonce=1, token="ULTRA", to="user3", amount=E))
    signed_engine.apply(t)
    assert signed_engine.balance_of("ULTRA", "user3") == 51 * E
    assert expected_nonce(signed_engine.read_state(), "user1") == 2

    with pytest.raises(AuthorizationError) as e:
        signed_engine.apply(t)
    assert e.value.reason == "bad_nonce"
    assert e.value.details == {"expected": 2, "got": 1}


def test_wrong_key_or_missing_sig_is_rejected(signed_engine, keys) -> None:
    forged = _signed(keys, "user1", tx("TOKEN_TRANSFER", "user1", nonce=1, token="ULTRA", to="mallory", amount=E), "mallory")
    with pytest.raises(AuthorizationError) as e:
        signed_engine.apply(forged)
    assert e.value.reason == "bad_signature"

    with pytest.raises(AuthorizationError) as e:
        signed_engine.apply(tx("TOKEN_TRANSFER", "user1", nonce=1, token="ULTRA", to="mallory", amount=E))
    assert e.value.reason == "bad_signature"

    tampered = _signed(keys, "user1", tx("TOKEN_TRANSFER", "user1", nonce=1, token="ULTRA", to="user3", amount=E))
    tampered["payload"] = dict(tampered["payload"], amount=2 * E)
    with pytest.raises(AuthorizationError):
        signed_engine.apply(tampered)

    assert signed_engine.balance_of("ULTRA", "user1") == 75 * E


def test_key_register_is_self_certifying(signed_engine, keys) -> None:
    pub = keys["user2"][1]
    signed_engine.apply(_signed(keys, "user2", tx("KEY_REGISTER", "user2", nonce=1, pubkey=pub)))
    assert signed_engine.read_state()["accounts"]["user2"]["pubkey"] == pub

    signed_engine.apply(
        _signed(keys, "user2", tx("TOKEN_TRANSFER", "user2", nonce=2, token="TKN", to="user1", amount=E))
    )
    assert signed_engine.balance_of("TKN", "user1") == 101 * E

    # A registered key cannot be swapped out by signing with a new one.
    other = keys["mallory"][1]
    with pytest.raises(AuthorizationError):
        signed_engine.apply(_signed(keys, "user2", tx("KEY_REGISTER", "user2", nonce=3, pubkey=other), "mallory"))


def test_nonces_are_ignored_without_signatures(engine) -> None:
    engine.apply(tx("MASS_UPDATE_POOLS", "user1", nonce=42))
    engine.apply(tx("MASS_UPDATE_POOLS", "user1", nonce=42))
    assert engine.receipts(5)[0]["seq"] == 2


@pytest.mark.parametrize(
    "payload",
    [
        {"pid": 0, "amount": True},
        {"pid": 0, "amount": "5"},
        {"pid": 0, "amount": -1},
        {"pid": 0, "amount": 1, "memo": "x"},
        {"amount": 1},
    ],
)
def test_payload_schema_is_strict(engine, payload) -> None:
    with pytest.raises(ValidationError) as e:
        engine.apply({"tx_type": "DEPOSIT", "signer": "user1", "nonce": 0, "payload": payload})
    assert e.value.reason == "payload_schema_mismatch"


def test_envelope_limits(engine, monkeypatch: pytest.MonkeyPatch) -> None:
    v = admit_tx({"tx_type": "", "signer": "user1", "payload": {}}, {})
    assert (v.ok, v.reason) == (False, "missing_tx_type")
    v = admit_tx({"tx_type": "GET_FEES", "signer": "", "payload": {}}, {})
    assert (v.ok, v.reason) == (False, "missing_signer")

    monkeypatch.setenv("ULTRASTAKE_MAX_TX_ENVELOPE_BYTES", "64")
    v = admit_tx(tx("EXCLUDE_FROM_FEE", "owner", addresses=["a" * 80]), {})
    assert v.ok is False
    assert v.reason == "tx_envelope_exceeds_size_limit"

    ok, rej = admit_tx(tx("GET_FEES", "owner"), {})
    assert ok is True and rej is None
