from __future__ import annotations

import logging
from dataclasses import replace
from typing import Mapping, Optional

from . import config
from .assembler import validate
from .environment import capture
from .mailer import MailSender, build_mailer
from .models import BuildTimestamps, EmailMessage, SMTPEndpoint, TransportConfig
from .templating import inline_css, render

logger = logging.getLogger(__name__)


def message_from_settings(settings: config.Settings) -> EmailMessage:
    return EmailMessage(
        to=list(settings.to),
        from_address=settings.from_address,
        cc=list(settings.cc),
        bcc=list(settings.bcc),
        reply_to=list(settings.reply_to),
        sender=settings.sender,
        subject=settings.subject,
        text=settings.text,
        html=settings.html,
        read_receipt=list(settings.read_receipt),
    )


def endpoint_from_settings(settings: config.Settings) -> SMTPEndpoint:
    return SMTPEndpoint(
        host=settings.host,
        port=settings.port,
        username=settings.username,
        password=settings.password,
    )


def transport_from_settings(settings: config.Settings) -> TransportConfig:
    return TransportConfig(
        server_name=settings.host,
        skip_verify=settings.skip_verify,
        send_type=settings.send_type,
        auth_type=settings.auth,
    )


def timestamps_from_settings(settings: config.Settings) -> BuildTimestamps:
    return BuildTimestamps(
        created=settings.build_created,
        enqueued=settings.build_enqueued,
        finished=settings.build_finished,
        started=settings.build_started,
    )


def compose(message: EmailMessage, table: Mapping[str, str]) -> EmailMessage:
    """Render subject and the active body against the environment table.

    HTML wins over text; when it is used the text body is dropped so only one
    body goes out.
    """

    logger.debug("Parsing Subject...")
    subject = render(message.subject, table).strip()

    if message.html:
        logger.debug("Parsing HTML...")
        body = render(message.html, table, autoescape=True)
        logger.debug("Parsing CSS...")
        return replace(message, subject=subject, html=inline_css(body), text="")

    logger.debug("Parsing Text...")
    return replace(message, subject=subject, text=render(message.text, table))


def run(
    settings: config.Settings,
    *,
    env: Optional[Mapping[str, str]] = None,
    mailer: Optional[MailSender] = None,
) -> EmailMessage:
    """Validate, compose and send one notification; returns what was sent."""

    endpoint = endpoint_from_settings(settings)
    transport = transport_from_settings(settings)

    message = validate(message_from_settings(settings), settings.attachment, settings.filename, endpoint)
    table = capture(env, timestamps_from_settings(settings))
    message = compose(message, table)

    if mailer is None:
        mailer = build_mailer(endpoint=endpoint, transport=transport)
    mailer.send(message, settings.attachment)

    logger.info("Plugin finished")
    return message
