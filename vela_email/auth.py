from __future__ import annotations

import logging
from typing import Optional, Protocol, Union

from .errors import EmailPluginError
from .models import AuthType

logger = logging.getLogger(__name__)

_LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1"}


class AuthError(EmailPluginError):
    """Raised when the SMTP authentication exchange cannot proceed."""


class Authenticator(Protocol):
    mechanism: str

    def start(self, *, host: str, encrypted: bool) -> Optional[str]:
        """Return the initial response, or None to wait for the first challenge."""
        ...

    def next(self, challenge: Union[bytes, str]) -> str: ...


def _prompt(challenge: Union[bytes, str]) -> str:
    if isinstance(challenge, bytes):
        challenge = challenge.decode("utf-8", errors="replace")
    return challenge.strip()


class PlainAuth:
    mechanism = "PLAIN"

    def __init__(self, username: str, password: str, host: str, identity: str = ""):
        self._identity = identity
        self._username = username
        self._password = password
        self._host = host

    def start(self, *, host: str, encrypted: bool) -> Optional[str]:
        # Credentials travel in the clear with PLAIN; only allow that locally.
        if not encrypted and host not in _LOCAL_HOSTS:
            raise AuthError("unencrypted connection")
        if host != self._host:
            raise AuthError("wrong host name")
        return f"{self._identity}\0{self._username}\0{self._password}"

    def next(self, challenge: Union[bytes, str]) -> str:
        raise AuthError(f"unexpected server challenge: {_prompt(challenge)!r}")


class LoginAuth:
    """SASL LOGIN: answer the username prompt, then the password prompt."""

    mechanism = "LOGIN"

    def __init__(self, username: str, password: str):
        self._username = username
        self._password = password

    def start(self, *, host: str, encrypted: bool) -> Optional[str]:
        return None

    def next(self, challenge: Union[bytes, str]) -> str:
        prompt = _prompt(challenge).lower()
        if prompt in ("", "username:"):
            return self._username
        if prompt == "password:":
            return self._password
        raise AuthError(f"unknown LOGIN challenge from server: {_prompt(challenge)!r}")


def select_auth(auth_type: AuthType, username: str, password: str, host: str) -> Optional[Authenticator]:
    if auth_type is AuthType.PLAIN:
        logger.info("Using login authentication from PlainAuth...")
        return PlainAuth(username, password, host)
    if auth_type is AuthType.LOGIN:
        logger.info("Using login authentication from LoginAuth...")
        return LoginAuth(username, password)
    logger.info("Using no login authentication...")
    return None
