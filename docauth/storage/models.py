from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class User:
    id: str
    name: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    image: Optional[str] = None
    email_verified: Optional[datetime] = None


@dataclass
class Account:
    id: str
    user_id: str
    provider_id: str
    provider_type: str
    provider_account_id: str
    refresh_token: Optional[str] = None
    access_token: Optional[str] = None
    access_token_expires: Optional[datetime] = None


@dataclass
class Session:
    id: str
    user_id: str
    session_token: str
    access_token: str
    expires: Optional[datetime] = None
    user: Optional[User] = None


@dataclass
class VerificationRequest:
    id: str
    identifier: str
    token: str
    expires: Optional[datetime] = None
