from __future__ import annotations

import base64
from email.message import EmailMessage
from typing import Any, ClassVar, List, Optional, Tuple

import pytest


def _decode(response: str) -> str:
    return base64.b64decode(response).decode("utf-8")


class DummySMTP:
    """Stand-in for smtplib.SMTP / SMTP_SSL that records the conversation."""

    instances: ClassVar[List["DummySMTP"]] = []
    # Prompts sent for a mechanism that does not use an initial response.
    login_prompts: ClassVar[List[bytes]] = [b"Username:", b"Password:"]
    auth_result: ClassVar[Tuple[int, bytes]] = (235, b"2.7.0 Authentication successful")

    def __init__(self, host: str = "", port: int = 0, **kwargs: Any) -> None:
        self.host = host
        self.port = port
        self.kwargs = kwargs
        self.ehlo_calls = 0
        self.starttls_context: Optional[Any] = None
        self.auth_mechanism: Optional[str] = None
        self.auth_responses: List[Optional[str]] = []
        self._pending_prompts: List[bytes] = []
        self.sent: List[tuple] = []
        self.closed = False
        DummySMTP.instances.append(self)

    def __enter__(self) -> "DummySMTP":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.closed = True

    def ehlo(self) -> None:
        self.ehlo_calls += 1

    def ehlo_or_helo_if_needed(self) -> None:
        if not self.ehlo_calls:
            self.ehlo()

    def starttls(self, *, context: Any) -> None:
        self.starttls_context = context

    def docmd(self, cmd: str, args: str = "") -> Tuple[int, bytes]:
        if cmd == "AUTH":
            mechanism, _, initial = args.partition(" ")
            self.auth_mechanism = mechanism
            if initial:
                self.auth_responses.append(_decode(initial))
            else:
                self.auth_responses.append(None)
                self._pending_prompts = list(self.login_prompts)
        else:
            self.auth_responses.append(_decode(cmd))
        if self._pending_prompts:
            return 334, base64.b64encode(self._pending_prompts.pop(0))
        return self.auth_result

    def send_message(self, msg: EmailMessage, from_addr: Optional[str] = None, to_addrs: Optional[List[str]] = None) -> None:
        self.sent.append((msg, from_addr, to_addrs))


@pytest.fixture
def smtp(monkeypatch: pytest.MonkeyPatch) -> type:
    DummySMTP.instances = []
    monkeypatch.setattr("vela_email.mailer.smtplib.SMTP", DummySMTP)
    monkeypatch.setattr("vela_email.mailer.smtplib.SMTP_SSL", DummySMTP)
    return DummySMTP
