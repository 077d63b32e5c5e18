"""Relay Envelope — encode/decode of registration messages on the relay.

Invariants:
    - PURE: no IO, no async
    - Message key is the normalized email, so the relay partitions by email
    - Envelope value: {"payload": <camelCase record>, "produced_at": <ISO-8601>}
    - decode_envelope raises PoisonMessage for anything that can never succeed

Design Decisions:
    - Bare records (no "payload" key) are still accepted: legacy producers
      published the record itself as the message value
    - Validation runs again on decode: the consumer must not trust the producer
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone

from registration_service.core.errors import PoisonMessage, ValidationError
from registration_service.core.validate_registration import validate_registration
from registration_service.schemas.registration import RegistrationRecord


@dataclass(frozen=True)
class DecodedEnvelope:
    record: RegistrationRecord
    produced_at: datetime | None


def encode_key(record: RegistrationRecord) -> bytes:
    return record.email.encode("utf-8")


def encode_envelope(
    record: RegistrationRecord, produced_at: datetime | None = None,
) -> bytes:
    """Serialize a validated record into the relay wire format."""
    produced_at = produced_at or datetime.now(timezone.utc)
    envelope = {
        "payload": record.to_payload(),
        "produced_at": produced_at.isoformat(),
    }
    return json.dumps(envelope, ensure_ascii=False).encode("utf-8")


def decode_envelope(value: bytes | None) -> DecodedEnvelope:
    """Parse and re-validate a relay message value."""
    if not value:
        raise PoisonMessage("empty message value")
    try:
        raw = json.loads(value.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise PoisonMessage(f"undecodable JSON ({e.__class__.__name__})")
    if not isinstance(raw, dict):
        raise PoisonMessage("message value is not a JSON object")

    payload = raw["payload"] if "payload" in raw else raw
    try:
        record = validate_registration(payload)
    except ValidationError as e:
        raise PoisonMessage(f"invalid payload ({e.field}): {e.message}")
    return DecodedEnvelope(record=record, produced_at=_parse_ts(raw.get("produced_at")))


def encode_dead_letter(
    topic: str, partition: int, offset: int, value: bytes | None, reason: str,
    failed_at: datetime | None = None,
) -> bytes:
    """Wrap an unprocessable message with enough context to replay it by hand."""
    failed_at = failed_at or datetime.now(timezone.utc)
    body = {
        "reason": reason,
        "source": {"topic": topic, "partition": partition, "offset": offset},
        "original_value": value.decode("utf-8", errors="replace") if value else None,
        "dead_lettered_at": failed_at.isoformat(),
    }
    return json.dumps(body, ensure_ascii=False).encode("utf-8")


def _parse_ts(value: object) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None
