from __future__ import annotations

import smtplib
import ssl
from pathlib import Path

import pytest

from vela_email.auth import LoginAuth, PlainAuth
from vela_email.mailer import SMTPMailer, TransportError, build_mailer, build_mime, build_tls_context, envelope
from vela_email.models import AuthType, EmailMessage, FilePart, SendType, SMTPEndpoint, TransportConfig

ENDPOINT = SMTPEndpoint(host="smtp.example.com", port="587", username="u", password="p")


def _message(**overrides) -> EmailMessage:
    fields = dict(
        to=["one@mail.com", "two@mail.com"],
        cc=["cc@mail.com"],
        bcc=["hidden@mail.com"],
        from_address="Builds <builds@example.com>",
        subject="octocat/hello-world main - 7fd1a60",
        html="<p>done</p>",
    )
    fields.update(overrides)
    return EmailMessage(**fields)


def test_build_mime_sends_only_html_when_present():
    mime = build_mime(_message(text="ignored text"))
    assert mime.get_content_type() == "text/html"
    assert "<p>done</p>" in mime.get_content()
    assert mime["To"] == "one@mail.com, two@mail.com"
    assert mime["Cc"] == "cc@mail.com"
    assert mime["Bcc"] is None
    assert mime["Message-ID"]


def test_build_mime_text_body_and_optional_headers():
    mime = build_mime(
        _message(html="", text="plain", sender="relay@example.com", reply_to=["r@mail.com"], read_receipt=["rr@mail.com"])
    )
    assert mime.get_content_type() == "text/plain"
    assert mime.get_content().strip() == "plain"
    assert mime["Sender"] == "relay@example.com"
    assert mime["Reply-To"] == "r@mail.com"
    assert mime["Disposition-Notification-To"] == "rr@mail.com"


def test_build_mime_adds_attachments():
    mime = build_mime(_message(), [FilePart("report.txt", "text/plain", b"all green")])
    names = [part.get_filename() for part in mime.iter_attachments()]
    assert names == ["report.txt"]


def test_envelope_uses_sender_and_includes_bcc():
    from_addr, recipients = envelope(_message(sender="relay@example.com"))
    assert from_addr == "relay@example.com"
    assert recipients == ["one@mail.com", "two@mail.com", "cc@mail.com", "hidden@mail.com"]
    assert envelope(_message())[0] == "builds@example.com"


def test_starttls_upgrades_before_sending(smtp):
    mailer = build_mailer(endpoint=ENDPOINT, transport=TransportConfig(send_type=SendType.STARTTLS))
    mailer.send(_message())

    client = smtp.instances[-1]
    assert (client.host, client.port) == ("smtp.example.com", 587)
    assert isinstance(client.starttls_context, ssl.SSLContext)
    assert "context" not in client.kwargs
    assert client.closed is True
    msg, from_addr, to_addrs = client.sent[0]
    assert from_addr == "builds@example.com"
    assert "hidden@mail.com" in to_addrs


def test_tls_connects_with_ssl_context(smtp):
    mailer = build_mailer(endpoint=ENDPOINT, transport=TransportConfig(send_type=SendType.TLS))
    mailer.send(_message())

    client = smtp.instances[-1]
    assert isinstance(client.kwargs["context"], ssl.SSLContext)
    assert client.starttls_context is None
    assert len(client.sent) == 1


@pytest.mark.parametrize("send_type", [SendType.PLAIN, SendType.UNRECOGNIZED])
def test_plain_and_unrecognized_send_without_encryption(smtp, send_type: SendType):
    mailer = build_mailer(endpoint=ENDPOINT, transport=TransportConfig(send_type=send_type))
    mailer.send(_message())

    client = smtp.instances[-1]
    assert client.starttls_context is None
    assert "context" not in client.kwargs
    assert len(client.sent) == 1


def test_login_auth_exchange_over_starttls(smtp):
    transport = TransportConfig(send_type=SendType.STARTTLS, auth_type=AuthType.LOGIN)
    mailer = build_mailer(endpoint=ENDPOINT, transport=transport)
    mailer.send(_message())

    client = smtp.instances[-1]
    assert client.auth_mechanism == "LOGIN"
    assert client.auth_responses == [None, "u", "p"]


def test_plain_auth_exchange_over_tls(smtp):
    mailer = SMTPMailer(ENDPOINT, TransportConfig(send_type=SendType.TLS), PlainAuth("u", "p", "smtp.example.com"))
    mailer.send(_message())

    client = smtp.instances[-1]
    assert client.auth_mechanism == "PLAIN"
    assert client.auth_responses == ["\0u\0p"]


def test_non_ascii_credentials_are_sent_as_utf8(smtp):
    auth = LoginAuth("jürgen", "pässwörd")
    SMTPMailer(ENDPOINT, TransportConfig(send_type=SendType.TLS), auth).send(_message())
    assert smtp.instances[-1].auth_responses == [None, "jürgen", "pässwörd"]

    plain = PlainAuth("jürgen", "pässwörd", "smtp.example.com")
    SMTPMailer(ENDPOINT, TransportConfig(send_type=SendType.TLS), plain).send(_message())
    assert smtp.instances[-1].auth_responses == ["\0jürgen\0pässwörd"]


def test_rejected_credentials_are_transport_error(smtp, monkeypatch):
    monkeypatch.setattr(smtp, "auth_result", (535, b"5.7.8 Authentication failed"))
    mailer = SMTPMailer(ENDPOINT, TransportConfig(send_type=SendType.TLS), PlainAuth("u", "p", "smtp.example.com"))
    with pytest.raises(TransportError, match="error sending with TLS") as excinfo:
        mailer.send(_message())
    assert isinstance(excinfo.value.cause, smtplib.SMTPAuthenticationError)
    assert smtp.instances[-1].sent == []


def test_plain_auth_over_plain_transport_is_transport_error(smtp):
    transport = TransportConfig(send_type=SendType.PLAIN, auth_type=AuthType.PLAIN)
    mailer = build_mailer(endpoint=ENDPOINT, transport=transport)
    with pytest.raises(TransportError, match="error sending with Plain: unencrypted connection") as excinfo:
        mailer.send(_message())
    assert excinfo.value.send_type is SendType.PLAIN
    assert smtp.instances[-1].sent == []


def test_unknown_login_prompt_is_transport_error(smtp, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(smtp, "login_prompts", [b"Token:"])
    mailer = SMTPMailer(ENDPOINT, TransportConfig(send_type=SendType.TLS), LoginAuth("u", "p"))
    with pytest.raises(TransportError, match="error sending with TLS"):
        mailer.send(_message())


def test_smtp_failure_names_the_send_mode(smtp, monkeypatch: pytest.MonkeyPatch):
    def boom(self, *args, **kwargs):
        raise smtplib.SMTPException("boom")

    monkeypatch.setattr(smtp, "send_message", boom)
    mailer = build_mailer(endpoint=ENDPOINT, transport=TransportConfig(send_type=SendType.STARTTLS))
    with pytest.raises(TransportError, match="error sending with StartTLS: boom") as excinfo:
        mailer.send(_message())
    assert isinstance(excinfo.value.cause, smtplib.SMTPException)


def test_unrecognized_failure_is_reported_as_plain(smtp, monkeypatch: pytest.MonkeyPatch):
    def refuse(self, *args, **kwargs):
        raise ConnectionRefusedError("refused")

    monkeypatch.setattr(smtp, "send_message", refuse)
    mailer = build_mailer(endpoint=ENDPOINT, transport=TransportConfig(send_type=SendType.UNRECOGNIZED))
    with pytest.raises(TransportError, match="error sending with Plain"):
        mailer.send(_message())


def test_invalid_port_is_transport_error(smtp):
    endpoint = SMTPEndpoint(host="smtp.example.com", port="smtp")
    mailer = build_mailer(endpoint=endpoint, transport=TransportConfig())
    with pytest.raises(TransportError):
        mailer.send(_message())


def test_attachment_path_is_attached(smtp, tmp_path: Path):
    path = tmp_path / "report.txt"
    path.write_text("all green", encoding="utf-8")
    mailer = build_mailer(endpoint=ENDPOINT, transport=TransportConfig(send_type=SendType.PLAIN))
    mailer.send(_message(), str(path))

    msg = smtp.instances[-1].sent[0][0]
    attachments = list(msg.iter_attachments())
    assert [a.get_filename() for a in attachments] == ["report.txt"]
    assert attachments[0].get_content() == "all green"


def test_skip_verify_disables_certificate_checks():
    context = build_tls_context(TransportConfig(skip_verify=True))
    assert context.check_hostname is False
    assert context.verify_mode == ssl.CERT_NONE
    assert build_tls_context(TransportConfig()).verify_mode == ssl.CERT_REQUIRED
