from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

logger = logging.getLogger(__name__)


class SendType(Enum):
    PLAIN = "Plain"
    STARTTLS = "StartTLS"
    TLS = "TLS"
    # Anything else the user typed; delivered exactly like PLAIN.
    UNRECOGNIZED = "Unrecognized"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SendType":
        normalized = (value or "").strip().lower()
        if normalized == "starttls":
            return cls.STARTTLS
        if normalized == "tls":
            return cls.TLS
        if normalized == "plain":
            return cls.PLAIN
        logger.warning("Unrecognized send type %r; falling back to unencrypted Plain delivery", value)
        return cls.UNRECOGNIZED

    @property
    def label(self) -> str:
        # Error messages and logs name the mode actually used on the wire.
        if self is SendType.UNRECOGNIZED:
            return SendType.PLAIN.value
        return self.value


class AuthType(Enum):
    NONE = "none"
    PLAIN = "PlainAuth"
    LOGIN = "LoginAuth"

    @classmethod
    def parse(cls, value: Optional[str]) -> "AuthType":
        normalized = (value or "").strip().lower()
        if normalized == "plainauth":
            return cls.PLAIN
        if normalized == "loginauth":
            return cls.LOGIN
        return cls.NONE


@dataclass(frozen=True)
class FilePart:
    filename: str
    content_type: str
    content: bytes


@dataclass
class EmailMessage:
    to: List[str] = field(default_factory=list)
    from_address: str = ""
    cc: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)
    reply_to: List[str] = field(default_factory=list)
    sender: str = ""
    subject: str = ""
    text: str = ""
    html: str = ""
    read_receipt: List[str] = field(default_factory=list)
    attachments: List[FilePart] = field(default_factory=list)


@dataclass(frozen=True)
class SMTPEndpoint:
    host: str
    port: str
    username: str = ""
    password: str = ""

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class TransportConfig:
    server_name: str = ""
    skip_verify: bool = False
    send_type: SendType = SendType.STARTTLS
    auth_type: AuthType = AuthType.NONE


@dataclass(frozen=True)
class BuildTimestamps:
    """Epoch seconds reported by the CI system for the running build."""

    created: int = 0
    enqueued: int = 0
    finished: int = 0
    started: int = 0
