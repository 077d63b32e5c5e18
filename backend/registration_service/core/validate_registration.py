"""Registration Validation — the gate in front of every store.

Invariants:
    - PURE: no IO, no async, no side effects
    - Success returns a normalized RegistrationRecord with every field present
    - Failure raises ValidationError naming exactly one field — the first offender
    - Absent fields are failures, never defaulted

Design Decisions:
    - Schema lives in the Pydantic model; this module only maps pydantic's error
      list onto the single-field error contract of the pipeline
"""

from typing import Any

from pydantic import ValidationError as SchemaError

from registration_service.core.errors import ValidationError
from registration_service.schemas.registration import RegistrationRecord

_BODY_FIELD = "body"


def validate_registration(data: Any) -> RegistrationRecord:
    """Validate and normalize a raw submission."""
    if not isinstance(data, dict):
        raise ValidationError('"body" must be an object', _BODY_FIELD)
    try:
        return RegistrationRecord.model_validate(data)
    except SchemaError as e:
        raise _first_error(e) from None


def _first_error(exc: SchemaError) -> ValidationError:
    """Collapse pydantic's error list to the first offending field."""
    err = exc.errors()[0]
    field = ".".join(str(part) for part in err["loc"]) or _BODY_FIELD
    if err["type"] == "missing":
        message = f'"{field}" is required'
    elif err["type"] == "extra_forbidden":
        message = f'"{field}" is not allowed'
    else:
        message = f'"{field}" {_describe(err)}'
    return ValidationError(message, field)


def _describe(err: dict) -> str:
    msg = err["msg"]
    # pydantic prefixes custom ValueError messages with "Value error, "
    if msg.startswith("Value error, "):
        msg = msg[len("Value error, "):]
    return msg[0].lower() + msg[1:] if msg else "is invalid"
