"""Caller identity: partner accounts, customer sessions and bearer tokens."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol

import bcrypt
import jwt

from .document_store import DocumentStore
from .errors import (
    AuthenticationError,
    InvalidCredentialsError,
    InvalidPartnerError,
    PartnerExistsError,
    PartnerNotFoundError,
    UnauthorizedError,
)
from .models import (
    Actor,
    Admin,
    Customer,
    Driver,
    Partner,
    Restaurant,
    Role,
    _generate_id,
    _utc_now,
)

logger = logging.getLogger(__name__)

PARTNERS_COLLECTION = "partners"
TOKEN_ALGORITHM = "HS256"
BCRYPT_MAX_BYTES = 72


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    if len(plain_password.encode()) > BCRYPT_MAX_BYTES:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode(), hashed_password.encode())
    except ValueError:
        # Malformed stored hash
        return False


@dataclass(frozen=True)
class Identity:
    """A resolved caller."""

    uid: str
    display_name: str
    role: str
    restaurant_id: str | None = None

    def to_actor(self) -> Actor:
        if self.role == Role.CUSTOMER:
            return Customer(uid=self.uid, name=self.display_name)
        if self.role == Role.RESTAURANT:
            return Restaurant(uid=self.uid, name=self.display_name, restaurant_id=self.restaurant_id)
        if self.role == Role.DRIVER:
            return Driver(uid=self.uid, name=self.display_name)
        if self.role == Role.ADMIN:
            return Admin(uid=self.uid, name=self.display_name)
        raise UnauthorizedError(f"unknown role: {self.role}")


class IdentityProvider(Protocol):
    """Resolves an opaque credential to a caller identity."""

    def resolve(self, credential: str) -> Identity:
        """
        Raises:
            UnauthorizedError: If the credential is missing, invalid or expired.
        """
        ...


class TokenIdentityProvider:
    """Issues and verifies signed bearer tokens (JWT, HS256)."""

    def __init__(self, secret: str, ttl_seconds: int = 12 * 60 * 60) -> None:
        self._secret = secret
        self.ttl_seconds = ttl_seconds

    def issue(self, identity: Identity, ttl_seconds: int | None = None) -> str:
        now = int(time.time())
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        payload: dict[str, Any] = {
            "sub": identity.uid,
            "name": identity.display_name,
            "role": identity.role,
            "iat": now,
            "exp": now + ttl,
        }
        if identity.restaurant_id is not None:
            payload["rid"] = identity.restaurant_id
        return jwt.encode(payload, self._secret, algorithm=TOKEN_ALGORITHM)

    def resolve(self, credential: str) -> Identity:
        if not credential:
            raise AuthenticationError("missing token")
        try:
            payload = jwt.decode(credential, self._secret, algorithms=[TOKEN_ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("token expired") from None
        except jwt.PyJWTError:
            raise AuthenticationError("invalid token") from None
        role = payload.get("role")
        if role not in Role.ALL or not payload.get("sub"):
            raise AuthenticationError("invalid token")
        return Identity(
            uid=payload["sub"],
            display_name=payload.get("name", ""),
            role=role,
            restaurant_id=payload.get("rid"),
        )


def customer_session(name: str) -> Identity:
    """Start an anonymous customer session with a fresh uid."""
    return Identity(uid=_generate_id(), display_name=name.strip(), role=Role.CUSTOMER)


class PartnerDirectory:
    """Restaurant and driver accounts, plus the configured admin login.

    Passwords are stored as bcrypt hashes only.
    """

    def __init__(
        self,
        store: DocumentStore,
        admin_username: str = "admin",
        admin_password_hash: str | None = None,
        bcrypt_rounds: int = 12,
    ) -> None:
        self.store = store
        self.admin_username = admin_username
        self._admin_password_hash = admin_password_hash
        self._bcrypt_rounds = bcrypt_rounds

    def create_partner(
        self,
        username: str,
        password: str,
        role: str,
        name: str,
        restaurant_id: str | None = None,
    ) -> Partner:
        """
        Create a partner account.

        Raises:
            InvalidPartnerError: Blank username/password, unknown role, or a
                password longer than bcrypt accepts.
            PartnerExistsError: If the username is taken.
        """
        username = (username or "").strip()
        if not username:
            raise InvalidPartnerError("username is required")
        if username == self.admin_username:
            raise PartnerExistsError(username)
        if role not in Role.PARTNER_ROLES:
            raise InvalidPartnerError(f"role must be one of {', '.join(Role.PARTNER_ROLES)}")
        if not password:
            raise InvalidPartnerError("password is required")
        if len(password.encode()) > BCRYPT_MAX_BYTES:
            raise InvalidPartnerError(f"password longer than {BCRYPT_MAX_BYTES} bytes")
        if role != Role.RESTAURANT:
            restaurant_id = None
        if self.store.query(PARTNERS_COLLECTION, {"username": username}):
            raise PartnerExistsError(username)

        partner = Partner(
            id="",
            username=username,
            password_hash=hash_password(password, rounds=self._bcrypt_rounds),
            role=role,
            name=name or username,
            restaurant_id=restaurant_id,
            created_at=_utc_now(),
        )
        partner.id = self.store.create(PARTNERS_COLLECTION, partner.to_dict())
        logger.info("partner %s created with role %s", username, role)
        return partner

    def list_partners(self, role: str | None = None) -> list[Partner]:
        filters = {"role": role} if role else None
        docs = self.store.query(PARTNERS_COLLECTION, filters, order_by="createdAt")
        return [Partner.from_dict(d) for d in docs]

    def get_partner(self, username: str) -> Partner:
        """
        Raises:
            PartnerNotFoundError: If no partner has this username.
        """
        docs = self.store.query(PARTNERS_COLLECTION, {"username": username})
        if not docs:
            raise PartnerNotFoundError(username)
        return Partner.from_dict(docs[0])

    def authenticate(self, username: str, password: str, portal: str) -> Identity:
        """
        Check a partner login for a given portal.

        Raises:
            InvalidCredentialsError: Unknown user or wrong password.
            UnauthorizedError: The account's role doesn't match the portal.
        """
        if portal == Role.ADMIN:
            if (
                username == self.admin_username
                and self._admin_password_hash
                and verify_password(password, self._admin_password_hash)
            ):
                return Identity(uid="admin", display_name="Admin", role=Role.ADMIN)
            raise InvalidCredentialsError()

        try:
            partner = self.get_partner(username)
        except PartnerNotFoundError:
            raise InvalidCredentialsError() from None
        if not verify_password(password, partner.password_hash):
            logger.warning("failed login for partner %s", username)
            raise InvalidCredentialsError()
        if partner.role != portal:
            raise UnauthorizedError("wrong portal")
        return Identity(
            uid=partner.id,
            display_name=partner.name,
            role=partner.role,
            restaurant_id=partner.restaurant_id,
        )
