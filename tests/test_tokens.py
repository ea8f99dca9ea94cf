"""Tests for token payloads and the token factory."""

from datetime import datetime, timezone

import pytest

from core_oauth.exceptions import ConfigurationError, MalformedToken
from core_oauth.oauth.serializer import SecureSerializer
from core_oauth.oauth.tokens import AccessTokenClaims, TokenFactory, TokenPayload

from .conftest import SIGN_KEY


@pytest.fixture
def serializer(crypt_key) -> SecureSerializer:
    return SecureSerializer(crypt_key, SIGN_KEY)


@pytest.fixture
def factory(serializer) -> TokenFactory:
    return TokenFactory(serializer)


def test_issue_bundle(factory):
    bundle = factory.issue("user-1", "client-1", {"scope": "read"}, {"token_type": "bearer", "expires_in": 3600})

    access = factory.decode(bundle.access_token)
    refresh = factory.decode(bundle.refresh_token)

    assert access.subject_id == refresh.subject_id == "user-1"
    assert access.client_id == refresh.client_id == "client-1"
    assert access.issued_at == refresh.issued_at
    assert access.extra == {"scope": "read"}
    assert not access.is_refresh()
    assert refresh.is_refresh()

    document = bundle.model_dump()
    assert document["token_type"] == "bearer"
    assert document["expires_in"] == 3600
    assert set(document) == {"access_token", "refresh_token", "token_type", "expires_in"}


def test_numeric_subject_is_stringified(factory):
    bundle = factory.issue(42, "client-1")

    assert factory.decode(bundle.access_token).subject_id == "42"
    assert factory.decode(bundle.refresh_token).subject_id == "42"


def test_issued_at_is_epoch_millis(factory):
    before = int(datetime.now(timezone.utc).timestamp() * 1000)
    payload = factory.decode(factory.issue("user-1", "client-1").access_token)
    after = int(datetime.now(timezone.utc).timestamp() * 1000)

    assert before - 1 <= payload.issued_at <= after + 1
    assert payload.grant_date.tzinfo is timezone.utc


@pytest.mark.parametrize("reserved", ["access_token", "refresh_token"])
def test_token_options_cannot_override_tokens(factory, reserved):
    with pytest.raises(ConfigurationError):
        factory.issue("user-1", "client-1", None, {reserved: "forged"})


def test_extra_data_cannot_be_refresh_marker(factory):
    with pytest.raises(ConfigurationError):
        factory.issue("user-1", "client-1", "refresh")


@pytest.mark.parametrize(
    "value",
    [
        "user-1",
        ["user-1", "client-1", 1],
        ["user-1", "client-1", "yesterday", None],
        [None, "client-1", 1, None],
        {"subject": "user-1"},
    ],
)
def test_wrong_payload_shape_is_malformed(factory, serializer, value):
    with pytest.raises(MalformedToken):
        factory.decode(serializer.encode(value))


def test_claims_from_payload():
    payload = TokenPayload(subject_id="user-1", client_id="client-1", issued_at=1700000000000, extra={"a": 1})

    claims = AccessTokenClaims.from_payload(payload)

    assert claims.subject_id == "user-1"
    assert claims.client_id == "client-1"
    assert claims.extra_data == {"a": 1}
    assert claims.issued_at == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)


def test_payload_list_round_trip():
    payload = TokenPayload.from_list(["user-1", "client-1", 5, "refresh"])

    assert payload.is_refresh()
    assert payload.to_list() == ["user-1", "client-1", 5, "refresh"]
