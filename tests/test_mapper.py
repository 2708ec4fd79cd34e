from datetime import datetime, timezone

from docauth.service.mapper import (
    account_document,
    account_from_document,
    parse_datetime,
    session_from_document,
    user_document,
    user_fields,
    user_from_document,
)
from docauth.storage.models import User


def test_user_document_omits_missing_fields():
    doc = user_document({"name": "test", "email": "test@example.com", "image": None})

    assert doc == {"_type": "user", "name": "test", "email": "test@example.com"}


def test_user_fields_accepts_camel_case_profile_keys():
    verified = datetime(2030, 1, 1, tzinfo=timezone.utc)

    fields = user_fields({"emailVerified": verified, "username": "tester"})

    assert fields == {"emailVerified": verified.isoformat(), "username": "tester"}


def test_user_fields_from_dataclass_skips_id():
    fields = user_fields(User(id="u1", name="Changed"))

    assert fields == {"name": "Changed"}


def test_store_id_becomes_public_id():
    user = user_from_document(
        {"_id": "abc", "_type": "user", "_rev": "r1", "name": "n", "emailVerified": None}
    )

    assert user.id == "abc"
    assert user.email_verified is None


def test_account_document_stringifies_provider_account_id():
    doc = account_document("u1", "github", "oauth", 12345, "refresh", "access", None)

    assert doc["providerAccountId"] == "12345"
    assert doc["user"] == {"_ref": "u1", "_type": "reference"}
    assert doc["accessTokenExpires"] is None


def test_account_round_trip_parses_expiry():
    expires = datetime(2030, 6, 1, tzinfo=timezone.utc)
    doc = account_document("u1", "github", "oauth", "42", "r", "a", expires)
    doc["_id"] = "acc-1"

    account = account_from_document(doc)

    assert account.id == "acc-1"
    assert account.access_token_expires == expires


def test_session_resolves_expanded_user():
    session = session_from_document(
        {
            "_id": "s1",
            "userId": "u1",
            "sessionToken": "st",
            "accessToken": "at",
            "expires": "2030-01-31T12:00:00Z",
            "user": {"_id": "u1", "_type": "user", "name": "n"},
        }
    )

    assert session.user is not None
    assert session.user.id == "u1"
    assert session.expires == datetime(2030, 1, 31, 12, 0, tzinfo=timezone.utc)


def test_session_with_unresolved_reference_has_no_user():
    session = session_from_document(
        {
            "_id": "s1",
            "userId": "u1",
            "sessionToken": "st",
            "accessToken": "at",
            "expires": None,
            "user": {"_ref": "u1", "_type": "reference"},
        }
    )

    assert session.user is None
    assert session.expires is None


def test_parse_datetime_handles_empty_values():
    assert parse_datetime("") is None
    assert parse_datetime(None) is None
