from __future__ import annotations

import base64
import logging
import mimetypes
import smtplib
import ssl
from email.message import EmailMessage as MIMEMessage
from email.utils import formatdate, getaddresses, make_msgid
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Tuple

from .auth import AuthError, Authenticator, select_auth
from .errors import EmailPluginError
from .models import EmailMessage, FilePart, SendType, SMTPEndpoint, TransportConfig

logger = logging.getLogger(__name__)


class TransportError(EmailPluginError):
    """Raised when delivery fails; names the send mode that was used."""

    def __init__(self, send_type: SendType, cause: BaseException):
        super().__init__(f"error sending with {send_type.label}: {cause}")
        self.send_type = send_type
        self.cause = cause


class MailSender(Protocol):
    send_type: SendType

    def send(self, message: EmailMessage, attachment: Optional[str] = None) -> None: ...


def _b64(response: str) -> str:
    return base64.b64encode(response.encode("utf-8")).decode("ascii")


def load_attachment(path: str) -> FilePart:
    p = Path(path)
    content_type, _ = mimetypes.guess_type(p.name)
    return FilePart(
        filename=p.name,
        content_type=content_type or "application/octet-stream",
        content=p.read_bytes(),
    )


def build_mime(message: EmailMessage, attachments: Sequence[FilePart] = ()) -> MIMEMessage:
    """Compose the outgoing MIME document.

    Only one body is written: HTML when present, otherwise text. Bcc
    addresses are left out of the headers and only used for the envelope.
    """

    mime = MIMEMessage()
    mime["From"] = message.from_address
    if message.sender:
        mime["Sender"] = message.sender
    mime["To"] = ", ".join(message.to)
    if message.cc:
        mime["Cc"] = ", ".join(message.cc)
    if message.reply_to:
        mime["Reply-To"] = ", ".join(message.reply_to)
    mime["Subject"] = " ".join(message.subject.splitlines())
    if message.read_receipt:
        mime["Disposition-Notification-To"] = ", ".join(message.read_receipt)
    mime["Date"] = formatdate(usegmt=True)
    mime["Message-ID"] = make_msgid()

    if message.html:
        mime.set_content(message.html, subtype="html")
    else:
        mime.set_content(message.text)

    for part in attachments:
        maintype, _, subtype = part.content_type.partition("/")
        mime.add_attachment(
            part.content,
            maintype=maintype or "application",
            subtype=subtype or "octet-stream",
            filename=part.filename,
        )
    return mime


def envelope(message: EmailMessage) -> Tuple[str, List[str]]:
    sender = message.sender or message.from_address
    _, from_addr = getaddresses([sender])[0]
    recipients = [addr for _, addr in getaddresses(message.to + message.cc + message.bcc) if addr]
    return from_addr or sender, recipients


def build_tls_context(transport: TransportConfig) -> ssl.SSLContext:
    context = ssl.create_default_context()
    if transport.skip_verify:
        logger.warning("TLS certificate verification is disabled")
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


class SMTPMailer:
    def __init__(
        self,
        endpoint: SMTPEndpoint,
        transport: TransportConfig,
        authenticator: Optional[Authenticator] = None,
    ) -> None:
        self._endpoint = endpoint
        self._transport = transport
        self._auth = authenticator
        self.send_type = transport.send_type

    def send(self, message: EmailMessage, attachment: Optional[str] = None) -> None:
        parts = list(message.attachments)
        if attachment:
            parts.append(load_attachment(attachment))
        mime = build_mime(message, parts)
        from_addr, recipients = envelope(message)

        logger.info("Sending email with %s...", self.send_type.label)
        try:
            port = int(self._endpoint.port)
            if self.send_type is SendType.STARTTLS:
                with smtplib.SMTP(self._endpoint.host, port) as client:
                    client.ehlo()
                    client.starttls(context=build_tls_context(self._transport))
                    client.ehlo()
                    self._deliver(client, mime, from_addr, recipients, encrypted=True)
            elif self.send_type is SendType.TLS:
                with smtplib.SMTP_SSL(self._endpoint.host, port, context=build_tls_context(self._transport)) as client:
                    self._deliver(client, mime, from_addr, recipients, encrypted=True)
            else:
                with smtplib.SMTP(self._endpoint.host, port) as client:
                    self._deliver(client, mime, from_addr, recipients, encrypted=False)
        except (smtplib.SMTPException, OSError, ValueError, AuthError) as exc:
            raise TransportError(self.send_type, exc) from exc
        logger.info("Mail sent to %s recipient(s) via %s", len(recipients), self._endpoint.address)

    def _deliver(
        self,
        client: smtplib.SMTP,
        mime: MIMEMessage,
        from_addr: str,
        recipients: List[str],
        *,
        encrypted: bool,
    ) -> None:
        client.ehlo_or_helo_if_needed()
        if self._auth is not None:
            self._authenticate(client, self._auth, encrypted=encrypted)
        client.send_message(mime, from_addr=from_addr, to_addrs=recipients)

    def _authenticate(self, client: smtplib.SMTP, auth: Authenticator, *, encrypted: bool) -> None:
        # smtplib's auth() encodes responses as ASCII; credentials go out as UTF-8.
        initial = auth.start(host=self._transport.server_name or self._endpoint.host, encrypted=encrypted)
        command = auth.mechanism if initial is None else f"{auth.mechanism} {_b64(initial)}"
        code, resp = client.docmd("AUTH", command)
        while code == 334:
            code, resp = client.docmd(_b64(auth.next(base64.decodebytes(resp))))
        if code not in (235, 503):
            raise smtplib.SMTPAuthenticationError(code, resp)


def build_mailer(*, endpoint: SMTPEndpoint, transport: TransportConfig) -> MailSender:
    authenticator = select_auth(transport.auth_type, endpoint.username, endpoint.password, endpoint.host)
    return SMTPMailer(endpoint, transport, authenticator)
