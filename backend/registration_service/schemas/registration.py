"""Registration Schemas — Pydantic models for records, rows and API envelopes.

Invariants:
    - RegistrationRecord: every field mandatory, unknown fields forbidden
    - Strings are stripped before length constraints apply
    - email is lowercased after syntax validation
    - Wire names are camelCase; gender/sex also accept genderAttr/sexAttr

Design Decisions:
    - Pydantic at the boundary, pure function (core/validate_registration.py) in front of it
    - RegistrationRow mirrors the persisted table and serializes snake_case
    - CompletionEntry extends the row with completed_at (cache-only metadata)
"""

import re
from datetime import datetime

from pydantic import (
    AliasChoices, BaseModel, ConfigDict, Field, field_validator,
)
from pydantic.alias_generators import to_camel

from registration_service.core.domain_types import Gender, Sex

# RFC 5322 dot-atom local part, hostname labels, at least one dot in the domain
EMAIL_PATTERN = re.compile(
    r"^[A-Za-z0-9!#$%&'*+/=?^_`{|}~-]+(?:\.[A-Za-z0-9!#$%&'*+/=?^_`{|}~-]+)*"
    r"@(?:[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?\.)+"
    r"[A-Za-z]{2,63}$"
)


class RegistrationRecord(BaseModel):
    """Validated, normalized registration submission."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="forbid",
        use_enum_values=True,
        frozen=True,
    )

    first_name: str = Field(min_length=2, max_length=100)
    last_name: str = Field(min_length=2, max_length=100)
    email: str = Field(max_length=254)
    gender: Gender = Field(validation_alias=AliasChoices("gender", "genderAttr"))
    sex: Sex = Field(validation_alias=AliasChoices("sex", "sexAttr"))
    occupation: str = Field(min_length=2, max_length=255)

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        if not EMAIL_PATTERN.match(v):
            raise ValueError("must be a valid email")
        return v.lower()

    def to_payload(self) -> dict:
        """Wire form (camelCase), used for staging entries and relay payloads."""
        return self.model_dump(mode="json", by_alias=True)


class RegistrationRow(BaseModel):
    """Persisted registration as returned by the system of record."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: str
    email: str
    gender: str
    sex: str
    occupation: str
    created_at: datetime
    updated_at: datetime


class CompletionEntry(RegistrationRow):
    """Completion cache value — a row snapshot plus when it was cached."""
    completed_at: datetime | None = None

    def to_row(self) -> RegistrationRow:
        return RegistrationRow.model_validate(
            self.model_dump(exclude={"completed_at"}),
        )


class SubmissionReceipt(BaseModel):
    """Acceptance of a submission — persistence has NOT happened yet."""
    email: str
    staging_key: str
    topic: str
