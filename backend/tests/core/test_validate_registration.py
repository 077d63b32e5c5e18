"""Registration Validation — tests for the pure validation gate.

Tests cover:
    - Valid input returns a record with every field present and normalized
    - Each single missing/invalid field fails naming that field
    - First offending field wins when several are wrong
    - genderAttr/sexAttr aliases, unknown fields, non-object input
"""

import pytest

from registration_service.core.errors import ValidationError
from registration_service.core.validate_registration import validate_registration

from tests.fakes import ann_payload


def _field_of(payload) -> str:
    with pytest.raises(ValidationError) as exc:
        validate_registration(payload)
    return exc.value.field


# ─── Happy path ──────────────────────────────────────────────────

def test_valid_payload_returns_normalized_record():
    record = validate_registration(ann_payload(
        firstName="  Ann ", email="  Ann@X.com ", occupation=" Engineer",
    ))
    assert record.first_name == "Ann"
    assert record.last_name == "Lee"
    assert record.email == "ann@x.com"
    assert record.gender == "female"
    assert record.sex == "female"
    assert record.occupation == "Engineer"


def test_wire_payload_uses_camel_case():
    record = validate_registration(ann_payload())
    assert record.to_payload() == ann_payload()


def test_gender_and_sex_attr_aliases_accepted():
    payload = ann_payload()
    payload["genderAttr"] = payload.pop("gender")
    payload["sexAttr"] = payload.pop("sex")
    record = validate_registration(payload)
    assert record.gender == "female"
    assert record.sex == "female"


def test_snake_case_field_names_accepted():
    record = validate_registration({
        "first_name": "Bob", "last_name": "Ray", "email": "bob@y.org",
        "gender": "male", "sex": "male", "occupation": "Nurse",
    })
    assert record.first_name == "Bob"


@pytest.mark.parametrize("gender", ["male", "female", "non-binary", "prefer-not-to-say"])
def test_every_gender_value_accepted(gender):
    assert validate_registration(ann_payload(gender=gender)).gender == gender


@pytest.mark.parametrize("sex", ["male", "female", "intersex"])
def test_every_sex_value_accepted(sex):
    assert validate_registration(ann_payload(sex=sex)).sex == sex


def test_length_boundaries_accepted():
    record = validate_registration(ann_payload(
        firstName="Al", lastName="x" * 100, occupation="y" * 255,
    ))
    assert len(record.last_name) == 100


# ─── Single-field failures ───────────────────────────────────────

@pytest.mark.parametrize("field", [
    "firstName", "lastName", "email", "gender", "sex", "occupation",
])
def test_missing_field_is_named(field):
    payload = ann_payload()
    del payload[field]
    assert _field_of(payload) == field


@pytest.mark.parametrize("field,value", [
    ("firstName", "A"),
    ("firstName", "x" * 101),
    ("lastName", "L"),
    ("email", "not-an-email"),
    ("email", "ann@localhost"),
    ("email", "ann@@x.com"),
    ("gender", "other"),
    ("sex", "non-binary"),
    ("occupation", "E"),
    ("occupation", "x" * 256),
    ("firstName", 42),
])
def test_invalid_field_is_named(field, value):
    assert _field_of(ann_payload(**{field: value})) == field


def test_whitespace_only_name_fails_after_strip():
    assert _field_of(ann_payload(firstName="   ")) == "firstName"


def test_first_offending_field_wins():
    assert _field_of(ann_payload(firstName="A", occupation="E")) == "firstName"


def test_unknown_field_rejected():
    assert _field_of(ann_payload(nickname="annie")) == "nickname"


@pytest.mark.parametrize("payload", [None, [], "ann", 3])
def test_non_object_input_rejected(payload):
    assert _field_of(payload) == "body"


def test_error_message_names_field():
    with pytest.raises(ValidationError) as exc:
        validate_registration(ann_payload(firstName="A"))
    assert "firstName" in exc.value.message
    assert exc.value.http_status == 400
