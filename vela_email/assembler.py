from __future__ import annotations

import logging
from dataclasses import replace
from email import policy
from email.message import EmailMessage as MIMEMessage
from email.parser import BytesParser
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from .defaults import DEFAULT_HTML_BODY, DEFAULT_SUBJECT
from .errors import EmailPluginError
from .models import EmailMessage, FilePart, SMTPEndpoint

logger = logging.getLogger(__name__)

# Recipient headers in a source file join several addresses with this.
ADDRESS_SEPARATOR = ", "

# Any defect found while parsing a source file is raised as-is.
_SOURCE_FILE_POLICY = policy.default.clone(raise_on_defect=True)


class MissingRecipientError(EmailPluginError):
    """Raised when no To address is given."""


class MissingSenderError(EmailPluginError):
    """Raised when no From address is given."""


class MissingSMTPEndpointError(EmailPluginError):
    """Raised when the SMTP host or port is missing."""


class FileMissingError(EmailPluginError, FileNotFoundError):
    """Raised when a referenced file does not exist."""


class EmptyFileError(EmailPluginError):
    """Raised when a referenced file has no content."""


def check_file(path: str, *, kind: str) -> Path:
    p = Path(path)
    try:
        size = p.stat().st_size
    except FileNotFoundError as exc:
        raise FileMissingError(f"{kind} not found: {path}") from exc
    if size == 0:
        raise EmptyFileError(f"{kind} provided is empty: {path}")
    return p


def split_addresses(values: Iterable[str]) -> List[str]:
    addresses: List[str] = []
    for value in values:
        if not value:
            continue
        addresses.extend(a for a in str(value).split(ADDRESS_SEPARATOR) if a)
    return addresses


def parse_source_file(path: str) -> EmailMessage:
    """Read a pre-formatted RFC 822 message into a new EmailMessage.

    Parse defects (e.g. a file that does not start with headers) propagate
    unchanged from the ``email`` package.
    """

    with open(path, "rb") as fh:
        parsed = BytesParser(policy=_SOURCE_FILE_POLICY).parse(fh)

    text, html, attachments = _extract_parts(parsed)
    return EmailMessage(
        to=split_addresses(parsed.get_all("To", [])),
        from_address=_header(parsed, "From"),
        cc=split_addresses(parsed.get_all("Cc", [])),
        bcc=split_addresses(parsed.get_all("Bcc", [])),
        reply_to=split_addresses(parsed.get_all("Reply-To", [])),
        sender=_header(parsed, "Sender"),
        subject=_header(parsed, "Subject"),
        text=text,
        html=html,
        read_receipt=split_addresses(parsed.get_all("Disposition-Notification-To", [])),
        attachments=attachments,
    )


def validate(
    message: EmailMessage,
    attachment: Optional[str],
    source_file: Optional[str],
    endpoint: SMTPEndpoint,
) -> EmailMessage:
    """Check the parameters and return the message that will be sent.

    A source file replaces the parameter-built message entirely. Checks stop
    at the first failure. Missing subject and body get the built-in
    templates, still unrendered.
    """

    logger.info("Validating Parameters...")

    if source_file:
        check_file(source_file, kind="email file")
        logger.info("Loading email from file %s", source_file)
        message = parse_source_file(source_file)

    if attachment:
        check_file(attachment, kind="attachment")

    if not any(message.to):
        raise MissingRecipientError("missing email parameter: To")

    if not message.from_address:
        raise MissingSenderError("missing email parameter: From")

    if not endpoint.host or not endpoint.port:
        raise MissingSMTPEndpointError("missing smtp parameter (host/port)")

    subject = message.subject or DEFAULT_SUBJECT
    html = message.html
    if not message.html and not message.text:
        html = DEFAULT_HTML_BODY
    return replace(message, subject=subject, html=html)


def _header(parsed: MIMEMessage, name: str) -> str:
    value = parsed.get(name)
    return str(value).strip() if value is not None else ""


def _extract_parts(parsed: MIMEMessage) -> Tuple[str, str, List[FilePart]]:
    text = ""
    html = ""
    attachments: List[FilePart] = []
    for part in parsed.walk():
        if part.is_multipart():
            continue
        content_type = part.get_content_type()
        filename = part.get_filename()
        if filename:
            attachments.append(FilePart(filename, content_type, part.get_payload(decode=True) or b""))
        elif content_type == "text/plain" and not text:
            text = part.get_content()
        elif content_type == "text/html" and not html:
            html = part.get_content()
        else:
            logger.debug("Skipping %s part of email file", content_type)
    return text, html, attachments
