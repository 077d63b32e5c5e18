"""Domain Types — tests for cache keys, email normalization and enum values."""

from registration_service.core.domain_types import (
    ConsumerState, Dependency, Gender, Sex, completed_key, normalize_email, pending_key,
)


def test_cache_keys_derive_from_email():
    assert pending_key("ann@x.com") == "pending:ann@x.com"
    assert completed_key("ann@x.com") == "completed:ann@x.com"


def test_normalize_email():
    assert normalize_email("  Ann@X.Com\n") == "ann@x.com"


def test_enum_wire_values():
    assert [g.value for g in Gender] == ["male", "female", "non-binary", "prefer-not-to-say"]
    assert [s.value for s in Sex] == ["male", "female", "intersex"]
    assert {d.value for d in Dependency} == {"cache", "database", "relay"}


def test_consumer_starts_disconnected():
    assert list(ConsumerState)[0] == ConsumerState.DISCONNECTED
