from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional, Sequence

from .models import AuthType, SendType

# --------------------------------
# Settings

# Build-system variables exposed to subject/body templates.
ENV_PREFIX = "VELA_"

DEFAULT_SEND_TYPE = "StartTLS"
DEFAULT_LOG_LEVEL = "info"

# Secrets and parameters the CI system may mount into the container.
LOG_LEVEL_FILES = ("/vela/parameters/email/log_level", "/vela/secrets/email/log_level")
USERNAME_FILES = ("/vela/parameters/email/username", "/vela/secrets/email/username")
PASSWORD_FILES = ("/vela/parameters/email/password", "/vela/secrets/email/password")

_TRUE_VALUES = {"1", "t", "true", "y", "yes", "on"}
_FALSE_VALUES = {"0", "f", "false", "n", "no", "off", ""}
# --------------------------------


@dataclass
class Settings:
    host: str
    port: str
    from_address: str = ""
    sender: str = ""
    to: List[str] = field(default_factory=list)
    cc: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)
    reply_to: List[str] = field(default_factory=list)
    read_receipt: List[str] = field(default_factory=list)
    subject: str = ""
    text: str = ""
    html: str = ""
    attachment: Optional[str] = None
    filename: Optional[str] = None
    username: str = ""
    password: str = ""
    skip_verify: bool = False
    send_type: SendType = SendType.STARTTLS
    auth: AuthType = AuthType.NONE
    log_level: str = DEFAULT_LOG_LEVEL
    ci: bool = False
    build_created: int = 0
    build_enqueued: int = 0
    build_finished: int = 0
    build_started: int = 0

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None) -> "Settings":
        e = env if env is not None else os.environ

        def first(*names: str, files: Sequence[str] = ()) -> Optional[str]:
            for name in names:
                value = e.get(name)
                if value is not None and value.strip():
                    return value
            for path in files:
                value = read_secret_file(path)
                if value:
                    return value
            return None

        def param(name: str, default: str = "") -> str:
            value = first(f"PARAMETER_{name}", f"EMAIL_{name}")
            return value.strip() if value is not None else default

        def param_list(name: str) -> List[str]:
            return split_list(param(name))

        def param_int(*names: str) -> int:
            value = first(*names)
            if value is None:
                return 0
            try:
                return int(value.strip())
            except ValueError as exc:
                raise ValueError(f"Environment variable {names[0]} must be an integer, got {value!r}.") from exc

        return Settings(
            host=param("HOST"),
            port=param("PORT"),
            from_address=param("FROM"),
            sender=param("SENDER"),
            to=param_list("TO"),
            cc=param_list("CC"),
            bcc=param_list("BCC"),
            reply_to=param_list("REPLYTO"),
            read_receipt=param_list("READRECEIPT"),
            # Bodies and subjects are templates; keep their whitespace.
            subject=first("PARAMETER_SUBJECT", "EMAIL_SUBJECT") or "",
            text=first("PARAMETER_TEXT", "EMAIL_TEXT") or "",
            html=first("PARAMETER_HTML", "EMAIL_HTML") or "",
            attachment=param("ATTACHMENT") or None,
            filename=param("FILENAME") or None,
            username=(first("PARAMETER_USERNAME", "USERNAME", files=USERNAME_FILES) or "").strip(),
            password=(first("PARAMETER_PASSWORD", "PASSWORD", files=PASSWORD_FILES) or "").strip(),
            skip_verify=parse_bool(param("SKIPVERIFY"), name="PARAMETER_SKIPVERIFY"),
            send_type=SendType.parse(param("SENDTYPE", DEFAULT_SEND_TYPE)),
            auth=AuthType.parse(param("AUTH")),
            log_level=(
                first("PARAMETER_LOG_LEVEL", "EMAIL_LOG_LEVEL", files=LOG_LEVEL_FILES) or DEFAULT_LOG_LEVEL
            ).strip(),
            ci=bool(first("VELA", "CI")),
            build_created=param_int("VELA_BUILD_CREATED", "BUILD_CREATED"),
            build_enqueued=param_int("VELA_BUILD_ENQUEUED", "BUILD_ENQUEUED"),
            build_finished=param_int("VELA_BUILD_FINISHED", "BUILD_FINISHED"),
            build_started=param_int("VELA_BUILD_STARTED", "BUILD_STARTED"),
        )


def read_secret_file(path: str) -> Optional[str]:
    p = Path(path)
    if not p.is_file():
        return None
    return p.read_text(encoding="utf-8").strip() or None


def split_list(raw: str) -> List[str]:
    return [p.strip() for p in raw.split(",") if p.strip()]


def parse_bool(raw: str, *, name: str) -> bool:
    normalized = raw.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ValueError(f"Environment variable {name} must be a boolean, got {raw!r}.")
