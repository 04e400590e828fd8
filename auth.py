from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import Settings
from errors import Conflict, IdentityUnavailable, Unauthorized

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    id: str
    email: Optional[str] = None

    def as_dict(self) -> dict[str, Optional[str]]:
        return {"id": self.id, "email": self.email}


@dataclass(frozen=True)
class AuthSession:
    user: Identity
    token: str

    def as_dict(self) -> dict[str, object]:
        return {"user": self.user.as_dict(), "token": self.token}


class IdentityProvider(Protocol):
    def verify(self, token: str) -> Identity: ...

    def register(self, email: str, password: str) -> AuthSession: ...

    def login(self, email: str, password: str) -> AuthSession: ...


def bearer_token(header: Optional[str]) -> str:
    if not header or not header.startswith("Bearer "):
        raise Unauthorized("Missing or invalid authorization header")
    token = header.split(" ", 1)[1].strip()
    if not token:
        raise Unauthorized("Missing or invalid authorization header")
    return token


class SignedTokenIdentityProvider:
    """Verifies tokens signed with a shared secret.

    Used for local development and tests; accounts live elsewhere, so
    register and login are not available.
    """

    def __init__(self, secret: str, max_age_secs: int = 86400) -> None:
        self.serializer = URLSafeTimedSerializer(secret, salt="utility-auth")
        self.max_age_secs = max_age_secs

    def issue_token(self, user_id: str, email: Optional[str] = None) -> str:
        return self.serializer.dumps({"sub": user_id, "email": email})

    def verify(self, token: str) -> Identity:
        try:
            data = self.serializer.loads(token, max_age=self.max_age_secs)
        except SignatureExpired as exc:
            raise Unauthorized("Invalid or expired token") from exc
        except BadSignature as exc:
            raise Unauthorized("Invalid or expired token") from exc
        if not isinstance(data, dict) or not data.get("sub"):
            raise Unauthorized("Invalid or expired token")
        return Identity(id=str(data["sub"]), email=data.get("email"))

    def register(self, email: str, password: str) -> AuthSession:
        raise IdentityUnavailable("Registration is not available")

    def login(self, email: str, password: str) -> AuthSession:
        raise IdentityUnavailable("Login is not available")


class SupabaseIdentityProvider:
    def __init__(self, url: str, service_key: str, timeout: float = 5.0) -> None:
        self.url = url.rstrip("/")
        self.service_key = service_key
        self.timeout = timeout

    def _call(
        self,
        method: str,
        path: str,
        *,
        token: Optional[str] = None,
        payload: Optional[dict[str, object]] = None,
    ) -> tuple[int, dict[str, object]]:
        headers = {
            "Accept": "application/json",
            "apikey": self.service_key,
            "Authorization": f"Bearer {token or self.service_key}",
        }
        data = None
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"
        req = Request(f"{self.url}{path}", data=data, headers=headers, method=method)
        try:
            with urlopen(req, timeout=self.timeout) as resp:
                status = resp.status
                raw = resp.read()
        except HTTPError as exc:
            status = exc.code
            raw = exc.read()
        except (URLError, TimeoutError) as exc:
            logger.warning(f"identity_unreachable: path={path} error={exc}")
            raise IdentityUnavailable("Authentication service unavailable") from exc
        try:
            body = json.loads(raw.decode("utf-8")) if raw else {}
        except json.JSONDecodeError as exc:
            raise IdentityUnavailable("Unexpected authentication response") from exc
        return status, body if isinstance(body, dict) else {}

    @staticmethod
    def _message(body: dict[str, object]) -> str:
        for key in ("msg", "message", "error_description", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
        return ""

    @staticmethod
    def _identity(user: object) -> Identity:
        if not isinstance(user, dict) or not user.get("id"):
            raise IdentityUnavailable("Unexpected authentication response")
        return Identity(id=str(user["id"]), email=user.get("email"))

    def verify(self, token: str) -> Identity:
        status, body = self._call("GET", "/auth/v1/user", token=token)
        if status in (401, 403):
            raise Unauthorized("Invalid or expired token")
        if status >= 500:
            raise IdentityUnavailable("Authentication service unavailable")
        if status != 200:
            raise Unauthorized("Authentication failed")
        return self._identity(body)

    def register(self, email: str, password: str) -> AuthSession:
        status, body = self._call(
            "POST",
            "/auth/v1/admin/users",
            payload={"email": email, "password": password, "email_confirm": True},
        )
        message = self._message(body)
        if status in (409, 422) and (
            "already been registered" in message or "already exists" in message
        ):
            raise Conflict("An account with this email already exists")
        if status >= 500:
            raise IdentityUnavailable("Authentication service unavailable")
        if status >= 400:
            raise IdentityUnavailable(message or "Registration failed")
        logger.info(f"identity_registered: email={email}")
        return self.login(email, password)

    def login(self, email: str, password: str) -> AuthSession:
        status, body = self._call(
            "POST",
            "/auth/v1/token?grant_type=password",
            payload={"email": email, "password": password},
        )
        if status == 400:
            raise Unauthorized("Invalid email or password")
        if status >= 400:
            raise IdentityUnavailable("Authentication service unavailable")
        token = body.get("access_token")
        if not isinstance(token, str) or not token:
            raise IdentityUnavailable("Unexpected authentication response")
        return AuthSession(user=self._identity(body.get("user")), token=token)


def build_identity_provider(settings: Settings) -> Optional[IdentityProvider]:
    provider = settings.identity_provider
    if provider == "supabase":
        if not settings.supabase_url or not settings.supabase_service_key:
            logger.error("identity_not_configured: missing SUPABASE_URL or key")
            return None
        return SupabaseIdentityProvider(
            settings.supabase_url, settings.supabase_service_key
        )
    if provider == "signed":
        if not settings.token_secret:
            logger.error("identity_not_configured: missing UTILITIES_TOKEN_SECRET")
            return None
        return SignedTokenIdentityProvider(
            settings.token_secret, settings.token_max_age_secs
        )
    if provider != "none":
        logger.error(f"identity_not_configured: unknown provider {provider}")
    return None
