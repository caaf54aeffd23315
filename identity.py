"""
In-process identity provider: accounts, sessions and onboarding.

Passwords are stored as bcrypt hashes; sessions are signed JWT access
tokens. The submission workflow only reads id, role, department, batch and
onboarding_complete from the resulting Principal.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Set

import bcrypt
from jose import JWTError, jwt

import config
from errors import AuthenticationError, NotFound, Unauthorized, ValidationError
from schemas import Principal

logger = logging.getLogger(__name__)


def get_password_hash(password: str, rounds: Optional[int] = None) -> str:
    # Bcrypt has a 72 byte limit
    password_bytes = password.encode("utf-8")[:72]
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=rounds or config.BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    password_bytes = plain_password.encode("utf-8")[:72]
    return bcrypt.checkpw(password_bytes, hashed_password.encode("utf-8"))


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Signed access token carrying ``data`` plus expiry and a unique jti."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta if expires_delta is not None else timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire, "jti": uuid.uuid4().hex, "type": "access"})
    return jwt.encode(to_encode, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """Claims of a valid access token, None when invalid or expired."""
    try:
        payload = jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    except JWTError as e:
        logger.debug(f"Rejected token: {e}")
        return None
    if payload.get("type") != "access":
        return None
    return payload


@dataclass
class _Account:
    principal: Principal
    password_hash: str


class IdentityProvider:

    def __init__(self, bcrypt_rounds: Optional[int] = None, token_ttl: Optional[timedelta] = None):
        self.bcrypt_rounds = bcrypt_rounds
        self.token_ttl = token_ttl
        self._accounts: Dict[str, _Account] = {}
        # jti of signed-out tokens
        self._revoked: Set[str] = set()

    def _account_by_id(self, principal_id: str) -> _Account:
        for account in self._accounts.values():
            if account.principal.id == principal_id:
                return account
        raise NotFound(principal_id)

    def sign_up(self, email: str, password: str, role: str = "student",
                display_name: Optional[str] = None) -> Principal:
        key = email.strip().lower()
        if key in self._accounts:
            raise ValidationError("Account already exists", fields={"email": "already registered"})

        principal = Principal(
            id=str(uuid.uuid4()),
            email=key,
            role=role,
            display_name=display_name,
        )
        self._accounts[key] = _Account(principal, get_password_hash(password, self.bcrypt_rounds))
        logger.info(f"Registered {role} account {key}")
        return principal

    def sign_in(self, email: str, password: str) -> str:
        account = self._accounts.get(email.strip().lower())
        if account is None or not verify_password(password, account.password_hash):
            raise AuthenticationError("Invalid email or password")
        return create_access_token({"sub": account.principal.id}, self.token_ttl)

    def sign_out(self, token: str):
        payload = decode_token(token)
        if payload is not None:
            self._revoked.add(payload["jti"])

    def current(self, token: Optional[str]) -> Optional[Principal]:
        payload = decode_token(token) if token else None
        if payload is None or payload.get("jti") in self._revoked:
            return None
        try:
            return self._account_by_id(payload.get("sub")).principal
        except NotFound:
            return None

    def complete_onboarding(self, principal_id: str, display_name: str, department: str,
                            batch: Optional[str] = None) -> Principal:
        account = self._account_by_id(principal_id)
        if account.principal.role == "student" and not batch:
            raise ValidationError("Onboarding incomplete", fields={"batch": "required for students"})

        account.principal = account.principal.model_copy(update={
            "display_name": display_name,
            "department": department,
            "batch": batch if account.principal.role == "student" else None,
            "onboarding_complete": True,
        })
        logger.info(f"Onboarding complete for {account.principal.email} ({department})")
        return account.principal


def require_role(principal: Principal, *roles: str) -> Principal:
    """Guard for role-restricted actions; onboarding must be finished."""
    if principal.role not in roles:
        raise Unauthorized(f"Requires role: {', '.join(roles)}")
    if not principal.onboarding_complete:
        raise Unauthorized("Complete onboarding first")
    return principal
