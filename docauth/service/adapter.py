from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Protocol, Union

from docauth.logging import get_logger
from docauth.service.errors import AdapterError, DeliveryFailure, StoreFailure
from docauth.service.lifecycle import (
    DEFAULT_SESSION_MAX_AGE,
    SessionPolicy,
    is_expired,
    utc_now,
    verification_expiry,
)
from docauth.service.mapper import (
    ACCOUNT_TYPE,
    SESSION_TYPE,
    USER_TYPE,
    VERIFICATION_REQUEST_TYPE,
    account_document,
    account_from_document,
    serialize_datetime,
    session_document,
    session_from_document,
    user_document,
    user_fields,
    user_from_document,
    verification_request_document,
    verification_request_from_document,
)
from docauth.service.tokens import generate_session_credential, hash_verification_token
from docauth.storage.documents import DocumentQuery, DocumentStore
from docauth.storage.models import Account, Session, User, VerificationRequest

logger = get_logger(__name__)

CREATE_USER_ERROR = "CREATE_USER_ERROR"
GET_USER_ERROR = "GET_USER_ERROR"
GET_USER_BY_EMAIL_ERROR = "GET_USERBYEMAIL_ERROR"
GET_USER_BY_PROVIDER_ERROR = "GET_USERBYPROVIDER_ERROR"
UPDATE_USER_ERROR = "UPDATE_USER_ERROR"
LINK_ACCOUNT_ERROR = "LINK_ACCOUNT_ERROR"
UNLINK_ACCOUNT_ERROR = "UNLINK_ACCOUNT_ERROR"
CREATE_SESSION_ERROR = "CREATE_SESSION_ERROR"
GET_SESSION_ERROR = "GET_SESSION_ERROR"
UPDATE_SESSION_ERROR = "UPDATE_SESSION_ERROR"
DELETE_SESSION_ERROR = "DELETE_SESSION_ERROR"
CREATE_VERIFICATION_REQUEST_ERROR = "CREATE_VERIFICATION_REQUEST_ERROR"
GET_VERIFICATION_REQUEST_ERROR = "GET_VERIFICATION_REQUEST_ERROR"
DELETE_VERIFICATION_REQUEST_ERROR = "DELETE_VERIFICATION_REQUEST_ERROR"

USER_BY_EMAIL = DocumentQuery(USER_TYPE, match=("email",))
ACCOUNT_BY_PROVIDER = DocumentQuery(ACCOUNT_TYPE, match=("providerId", "providerAccountId"))
ACCOUNT_BY_PROVIDER_WITH_USER = DocumentQuery(
    ACCOUNT_TYPE, match=("providerId", "providerAccountId"), expand=("user",)
)
SESSION_BY_TOKEN = DocumentQuery(SESSION_TYPE, match=("sessionToken",))
SESSION_BY_TOKEN_WITH_USER = DocumentQuery(
    SESSION_TYPE, match=("sessionToken",), expand=("user",)
)
VERIFICATION_REQUEST_BY_TOKEN = DocumentQuery(
    VERIFICATION_REQUEST_TYPE, match=("identifier", "token")
)


class VerificationSender(Protocol):
    def __call__(
        self,
        *,
        identifier: str,
        url: str,
        token: str,
        base_url: str,
        provider: "EmailProvider",
    ) -> Any: ...


@dataclass
class EmailProvider:
    """Passwordless provider settings handed to ``create_verification_request``.

    ``send_verification_request`` may be a coroutine function or a plain
    callable; ``max_age`` is the link lifetime in seconds.
    """

    send_verification_request: VerificationSender
    max_age: Optional[int] = None
    id: str = "email"


@dataclass
class SessionOptions:
    max_age: Optional[int] = DEFAULT_SESSION_MAX_AGE
    update_age: Optional[Union[int, float]] = 0


@dataclass
class AppOptions:
    session: SessionOptions = field(default_factory=SessionOptions)
    debug: bool = False
    base_url: str = ""
    secret: Optional[str] = None


class DocumentAdapter:
    """Entry point handed to the authentication framework.

    The store client is injected and never closed here; ``get_adapter`` binds
    the per-application options.
    """

    def __init__(self, client: DocumentStore) -> None:
        self.client = client

    def get_adapter(
        self,
        options: Optional[AppOptions] = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> "AuthAdapter":
        return AuthAdapter(self.client, options or AppOptions(), clock=clock)


class AuthAdapter:
    """User, account, session and verification-request operations.

    Reads that find nothing return ``None``. Store failures are logged and
    re-raised as ``StoreFailure`` tagged with the operation name.
    """

    def __init__(
        self,
        client: DocumentStore,
        options: AppOptions,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.client = client
        self.options = options
        max_age = options.session.max_age
        update_age = options.session.update_age
        self.policy = SessionPolicy(
            max_age=DEFAULT_SESSION_MAX_AGE if max_age is None else max_age,
            update_age=0 if update_age is None else update_age,
        )
        self._now = clock
        self.logger = logger

    def _debug(self, operation: str, **fields: Any) -> None:
        if self.options.debug:
            self.logger.info("adapter_debug", operation=operation, **fields)

    def _store_failure(self, operation: str, exc: Exception) -> AdapterError:
        self.logger.error(
            "adapter_operation_failed",
            operation=operation,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return StoreFailure(operation, detail={"error": str(exc)})

    def _resolve_secret(self, secret: Optional[str]) -> str:
        resolved = secret or self.options.secret
        if not resolved:
            raise ValueError("a secret is required to hash verification tokens")
        return resolved

    # users
    async def create_user(self, profile: Union[User, Mapping[str, Any]]) -> User:
        self._debug("create_user", name=user_fields(profile).get("name"))
        try:
            doc = await self.client.create(user_document(profile))
            return user_from_document(doc)
        except Exception as exc:
            raise self._store_failure(CREATE_USER_ERROR, exc) from exc

    async def get_user(self, user_id: str) -> Optional[User]:
        self._debug("get_user", user_id=user_id)
        try:
            doc = await self.client.get_document(user_id)
            if doc is None or doc.get("_type") != USER_TYPE:
                return None
            return user_from_document(doc)
        except Exception as exc:
            raise self._store_failure(GET_USER_ERROR, exc) from exc

    async def get_user_by_email(self, email: str) -> Optional[User]:
        self._debug("get_user_by_email", email=email)
        try:
            doc = await self.client.fetch(USER_BY_EMAIL, {"email": email})
            return user_from_document(doc) if doc else None
        except Exception as exc:
            raise self._store_failure(GET_USER_BY_EMAIL_ERROR, exc) from exc

    async def get_user_by_provider_account_id(
        self, provider_id: str, provider_account_id: Any
    ) -> Optional[User]:
        self._debug(
            "get_user_by_provider_account_id",
            provider_id=provider_id,
            provider_account_id=str(provider_account_id),
        )
        params = {"providerId": provider_id, "providerAccountId": str(provider_account_id)}
        try:
            account = await self.client.fetch(ACCOUNT_BY_PROVIDER_WITH_USER, params)
            if not account or not account.get("user"):
                return None
            return user_from_document(account["user"])
        except Exception as exc:
            raise self._store_failure(GET_USER_BY_PROVIDER_ERROR, exc) from exc

    async def update_user(self, user: User) -> User:
        self._debug("update_user", user_id=user.id)
        try:
            doc = await self.client.patch(user.id).set(user_fields(user)).commit()
            return user_from_document(doc)
        except Exception as exc:
            raise self._store_failure(UPDATE_USER_ERROR, exc) from exc

    async def delete_user(self, user_id: str) -> None:
        # Accounts and sessions are left to expire or be unlinked explicitly
        self._debug("delete_user", user_id=user_id)
        return None

    # accounts
    async def link_account(
        self,
        user_id: str,
        provider_id: str,
        provider_type: str,
        provider_account_id: Any,
        refresh_token: Optional[str],
        access_token: Optional[str],
        access_token_expires: Optional[datetime],
    ) -> Account:
        self._debug(
            "link_account",
            user_id=user_id,
            provider_id=provider_id,
            provider_type=provider_type,
            provider_account_id=str(provider_account_id),
            access_token_expires=serialize_datetime(access_token_expires),
        )
        doc = account_document(
            user_id,
            provider_id,
            provider_type,
            provider_account_id,
            refresh_token,
            access_token,
            access_token_expires,
        )
        try:
            return account_from_document(await self.client.create(doc))
        except Exception as exc:
            raise self._store_failure(LINK_ACCOUNT_ERROR, exc) from exc

    async def unlink_account(
        self, user_id: str, provider_id: str, provider_account_id: Any
    ) -> Optional[Account]:
        self._debug(
            "unlink_account",
            user_id=user_id,
            provider_id=provider_id,
            provider_account_id=str(provider_account_id),
        )
        params = {"providerId": provider_id, "providerAccountId": str(provider_account_id)}
        try:
            account = await self.client.fetch(ACCOUNT_BY_PROVIDER, params)
            if not account:
                return None
            result = await self.client.delete(account["_id"])
            documents = result.documents
            return account_from_document(documents[0]) if documents else None
        except Exception as exc:
            raise self._store_failure(UNLINK_ACCOUNT_ERROR, exc) from exc

    # sessions
    async def create_session(self, user: User) -> Session:
        self._debug("create_session", user_id=user.id)
        doc = session_document(
            user.id,
            session_token=generate_session_credential(),
            access_token=generate_session_credential(),
            expires=self.policy.session_expiry(self._now()),
        )
        try:
            return session_from_document(await self.client.create(doc))
        except Exception as exc:
            raise self._store_failure(CREATE_SESSION_ERROR, exc) from exc

    async def get_session(self, session_token: str) -> Optional[Session]:
        self._debug("get_session", session_token=session_token)
        try:
            doc = await self.client.fetch(
                SESSION_BY_TOKEN_WITH_USER, {"sessionToken": session_token}
            )
            if not doc:
                return None
            session = session_from_document(doc)
            if is_expired(session.expires, self._now()):
                await self.client.delete(session.id)
                self.logger.info("session_expired_removed", session_id=session.id)
                return None
            return session
        except Exception as exc:
            raise self._store_failure(GET_SESSION_ERROR, exc) from exc

    async def update_session(self, session: Session, force: bool = False) -> Optional[Session]:
        self._debug("update_session", session_id=session.id, force=force)
        now = self._now()
        if not self.policy.should_renew(session.expires, now, force=force):
            return None
        expires = self.policy.session_expiry(now)
        try:
            doc = await self.client.patch(session.id).set(
                {"expires": serialize_datetime(expires)}
            ).commit()
            return session_from_document(doc)
        except Exception as exc:
            raise self._store_failure(UPDATE_SESSION_ERROR, exc) from exc

    async def delete_session(self, session_token: str) -> Optional[Session]:
        self._debug("delete_session", session_token=session_token)
        try:
            doc = await self.client.fetch(SESSION_BY_TOKEN, {"sessionToken": session_token})
            if not doc:
                return None
            result = await self.client.delete(doc["_id"])
            documents = result.documents
            return session_from_document(documents[0]) if documents else None
        except Exception as exc:
            raise self._store_failure(DELETE_SESSION_ERROR, exc) from exc

    # verification requests
    async def create_verification_request(
        self,
        identifier: str,
        url: str,
        token: str,
        secret: Optional[str] = None,
        provider: Optional[EmailProvider] = None,
    ) -> VerificationRequest:
        self._debug("create_verification_request", identifier=identifier)
        if provider is None:
            raise ValueError("an email provider is required to send verification requests")
        digest = hash_verification_token(token, self._resolve_secret(secret))
        doc = verification_request_document(
            identifier, digest, verification_expiry(provider.max_age, self._now())
        )
        try:
            request = verification_request_from_document(await self.client.create(doc))
        except Exception as exc:
            raise self._store_failure(CREATE_VERIFICATION_REQUEST_ERROR, exc) from exc

        # The stored request is kept if delivery fails; it expires on its own
        try:
            sent = provider.send_verification_request(
                identifier=identifier,
                url=url,
                token=token,
                base_url=self.options.base_url,
                provider=provider,
            )
            if inspect.isawaitable(sent):
                await sent
        except Exception as exc:
            self.logger.error(
                "verification_delivery_failed",
                provider=provider.id,
                request_id=request.id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise DeliveryFailure(
                CREATE_VERIFICATION_REQUEST_ERROR,
                detail={"request_id": request.id, "error": str(exc)},
            ) from exc
        return request

    async def _find_verification_request(
        self, identifier: str, digest: str
    ) -> Optional[dict]:
        return await self.client.fetch(
            VERIFICATION_REQUEST_BY_TOKEN, {"identifier": identifier, "token": digest}
        )

    async def get_verification_request(
        self,
        identifier: str,
        token: str,
        secret: Optional[str] = None,
        provider: Optional[EmailProvider] = None,
    ) -> Optional[VerificationRequest]:
        self._debug("get_verification_request", identifier=identifier, token=token)
        digest = hash_verification_token(token, self._resolve_secret(secret))
        try:
            doc = await self._find_verification_request(identifier, digest)
            if not doc:
                return None
            request = verification_request_from_document(doc)
            if is_expired(request.expires, self._now()):
                # Expired links can never be redeemed, so drop them on sight
                await self.client.delete(request.id)
                self.logger.info("verification_request_expired_removed", request_id=request.id)
                return None
            return request
        except Exception as exc:
            raise self._store_failure(GET_VERIFICATION_REQUEST_ERROR, exc) from exc

    async def delete_verification_request(
        self,
        identifier: str,
        token: str,
        secret: Optional[str] = None,
        provider: Optional[EmailProvider] = None,
    ) -> Optional[VerificationRequest]:
        self._debug("delete_verification_request", identifier=identifier, token=token)
        digest = hash_verification_token(token, self._resolve_secret(secret))
        try:
            doc = await self._find_verification_request(identifier, digest)
            if not doc:
                return None
            result = await self.client.delete(doc["_id"])
            documents = result.documents
            return verification_request_from_document(documents[0]) if documents else None
        except Exception as exc:
            raise self._store_failure(DELETE_VERIFICATION_REQUEST_ERROR, exc) from exc


__all__ = [
    "AppOptions",
    "AuthAdapter",
    "DocumentAdapter",
    "EmailProvider",
    "SessionOptions",
    "VerificationSender",
]
