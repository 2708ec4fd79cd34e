"""Translation between entity dataclasses and store documents.

This is the only module that knows the persisted field names; in particular
the store's ``_id`` becomes ``id`` here and nowhere else.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Union

from docauth.service.lifecycle import as_utc
from docauth.storage.models import Account, Session, User, VerificationRequest

USER_TYPE = "user"
ACCOUNT_TYPE = "account"
SESSION_TYPE = "session"
VERIFICATION_REQUEST_TYPE = "verificationrequest"

_USER_FIELDS = {
    "name": "name",
    "username": "username",
    "email": "email",
    "image": "image",
    "email_verified": "emailVerified",
}


def serialize_datetime(value: Optional[datetime]) -> Optional[str]:
    return as_utc(value).isoformat() if value is not None else None


def parse_datetime(raw: Any) -> Optional[datetime]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return as_utc(raw)
    text = str(raw)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))


def reference(document_id: str) -> Dict[str, str]:
    return {"_ref": document_id, "_type": "reference"}


def _profile_value(profile: Union[User, Mapping[str, Any]], attr: str) -> Any:
    if isinstance(profile, Mapping):
        if attr in profile:
            return profile[attr]
        return profile.get(_USER_FIELDS[attr])
    return getattr(profile, attr, None)


def user_fields(profile: Union[User, Mapping[str, Any]]) -> Dict[str, Any]:
    """Persisted user fields present on ``profile``; ``None`` values are omitted."""

    fields: Dict[str, Any] = {}
    for attr, doc_field in _USER_FIELDS.items():
        value = _profile_value(profile, attr)
        if value is None:
            continue
        fields[doc_field] = serialize_datetime(value) if isinstance(value, datetime) else value
    return fields


def user_document(profile: Union[User, Mapping[str, Any]]) -> Dict[str, Any]:
    return {"_type": USER_TYPE, **user_fields(profile)}


def user_from_document(doc: Mapping[str, Any]) -> User:
    return User(
        id=str(doc["_id"]),
        name=doc.get("name"),
        username=doc.get("username"),
        email=doc.get("email"),
        image=doc.get("image"),
        email_verified=parse_datetime(doc.get("emailVerified")),
    )


def account_document(
    user_id: str,
    provider_id: str,
    provider_type: str,
    provider_account_id: Any,
    refresh_token: Optional[str],
    access_token: Optional[str],
    access_token_expires: Optional[datetime],
) -> Dict[str, Any]:
    return {
        "_type": ACCOUNT_TYPE,
        "user": reference(user_id),
        "userId": user_id,
        "providerId": provider_id,
        "providerType": provider_type,
        # Providers hand out numeric ids; lookups always compare strings
        "providerAccountId": str(provider_account_id),
        "refreshToken": refresh_token,
        "accessToken": access_token,
        "accessTokenExpires": serialize_datetime(access_token_expires),
    }


def account_from_document(doc: Mapping[str, Any]) -> Account:
    return Account(
        id=str(doc["_id"]),
        user_id=doc["userId"],
        provider_id=doc["providerId"],
        provider_type=doc["providerType"],
        provider_account_id=str(doc["providerAccountId"]),
        refresh_token=doc.get("refreshToken"),
        access_token=doc.get("accessToken"),
        access_token_expires=parse_datetime(doc.get("accessTokenExpires")),
    )


def session_document(
    user_id: str, session_token: str, access_token: str, expires: Optional[datetime]
) -> Dict[str, Any]:
    return {
        "_type": SESSION_TYPE,
        "user": reference(user_id),
        "userId": user_id,
        "sessionToken": session_token,
        "accessToken": access_token,
        "expires": serialize_datetime(expires),
    }


def session_from_document(doc: Mapping[str, Any]) -> Session:
    linked = doc.get("user")
    user = user_from_document(linked) if isinstance(linked, Mapping) and "_id" in linked else None
    return Session(
        id=str(doc["_id"]),
        user_id=doc["userId"],
        session_token=doc["sessionToken"],
        access_token=doc["accessToken"],
        expires=parse_datetime(doc.get("expires")),
        user=user,
    )


def verification_request_document(
    identifier: str, token_digest: str, expires: Optional[datetime]
) -> Dict[str, Any]:
    return {
        "_type": VERIFICATION_REQUEST_TYPE,
        "identifier": identifier,
        "token": token_digest,
        "expires": serialize_datetime(expires),
    }


def verification_request_from_document(doc: Mapping[str, Any]) -> VerificationRequest:
    return VerificationRequest(
        id=str(doc["_id"]),
        identifier=doc["identifier"],
        token=doc["token"],
        expires=parse_datetime(doc.get("expires")),
    )
