"""Relay Envelope — tests for the relay wire format and poison detection.

Tests cover:
    - Envelope carries payload + produced_at; key is the email
    - Legacy bare-record values still decode
    - Undecodable, non-object, empty and invalid payloads raise PoisonMessage
    - Dead-letter wrapping keeps the original value and its source coordinates
"""

import json
from datetime import datetime, timezone

import pytest

from registration_service.core.errors import PoisonMessage
from registration_service.core.relay_envelope import (
    decode_envelope, encode_dead_letter, encode_envelope, encode_key,
)
from registration_service.core.validate_registration import validate_registration

from tests.fakes import ann_payload


def test_envelope_contains_payload_and_timestamp():
    record = validate_registration(ann_payload())
    ts = datetime(2026, 3, 1, tzinfo=timezone.utc)
    body = json.loads(encode_envelope(record, produced_at=ts))
    assert body["payload"] == ann_payload()
    assert body["produced_at"] == ts.isoformat()


def test_key_is_normalized_email():
    record = validate_registration(ann_payload(email="ANN@X.COM"))
    assert encode_key(record) == b"ann@x.com"


def test_decode_returns_revalidated_record():
    record = validate_registration(ann_payload())
    decoded = decode_envelope(encode_envelope(record))
    assert decoded.record == record
    assert decoded.produced_at is not None


def test_decode_accepts_bare_record():
    decoded = decode_envelope(json.dumps(ann_payload()).encode())
    assert decoded.record.email == "ann@x.com"
    assert decoded.produced_at is None


@pytest.mark.parametrize("value", [
    None,
    b"",
    b"{not json",
    b"\xff\xfe\xfa",
    b"[1, 2, 3]",
    b'"just a string"',
])
def test_undecodable_values_are_poison(value):
    with pytest.raises(PoisonMessage):
        decode_envelope(value)


def test_invalid_payload_is_poison_naming_field():
    value = json.dumps({"payload": ann_payload(firstName="A")}).encode()
    with pytest.raises(PoisonMessage) as exc:
        decode_envelope(value)
    assert "firstName" in exc.value.reason


def test_null_payload_is_poison():
    with pytest.raises(PoisonMessage):
        decode_envelope(json.dumps({"payload": None}).encode())


def test_dead_letter_keeps_source_and_original_value():
    body = json.loads(encode_dead_letter(
        "user-registration", 2, 17, b"{broken", "undecodable JSON",
    ))
    assert body["reason"] == "undecodable JSON"
    assert body["source"] == {"topic": "user-registration", "partition": 2, "offset": 17}
    assert body["original_value"] == "{broken"
    assert "dead_lettered_at" in body
