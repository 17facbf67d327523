from __future__ import annotations

import argparse
import json
import logging
import platform
import sys
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional

from . import __version__, config
from .config import split_list
from .errors import EmailPluginError
from .models import AuthType, SendType
from .orchestrator import run

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
CI_LOG_FORMAT = "%(asctime)s %(levelname)s - %(message)s"

_LOG_LEVELS = {
    "t": logging.DEBUG,
    "trace": logging.DEBUG,
    "d": logging.DEBUG,
    "debug": logging.DEBUG,
    "i": logging.INFO,
    "info": logging.INFO,
    "w": logging.WARNING,
    "warn": logging.WARNING,
    "e": logging.ERROR,
    "error": logging.ERROR,
    "f": logging.CRITICAL,
    "fatal": logging.CRITICAL,
    "p": logging.CRITICAL,
    "panic": logging.CRITICAL,
}


def resolve_log_level(name: str) -> int:
    return _LOG_LEVELS.get(name.strip().lower(), logging.INFO)


def configure_logging(level: str, *, ci: bool = False) -> None:
    logging.basicConfig(
        level=resolve_log_level(level),
        format=CI_LOG_FORMAT if ci else LOG_FORMAT,
    )


def version_info() -> Dict[str, str]:
    return {
        "version": __version__,
        "python": platform.python_version(),
        "platform": sys.platform,
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vela-email",
        description="Send build information from a CI pipeline to a user's email.",
    )
    parser.add_argument("--log-level", help="trace|debug|info|warn|error|fatal|panic")
    parser.add_argument("--ci", action="store_true", default=None, help="plain log output for CI systems")

    parser.add_argument("--from", dest="from_address", help="from address")
    parser.add_argument("--sender", help="sender address (overrides from for delivery)")
    parser.add_argument("--to", help="to addresses, comma separated")
    parser.add_argument("--cc", help="carbon copy addresses, comma separated")
    parser.add_argument("--bcc", help="blind carbon copy addresses, comma separated")
    parser.add_argument("--replyto", dest="reply_to", help="reply-to addresses, comma separated")
    parser.add_argument("--readreceipt", dest="read_receipt", help="addresses requesting read receipts")
    parser.add_argument("--subject", help="subject template")
    parser.add_argument("--text", help="body template in text format")
    parser.add_argument("--html", help="body template in html format")
    parser.add_argument("--attachment", help="file to attach to the email")
    parser.add_argument("--filename", help="file that contains the whole email (To, From, Subject, etc.)")

    parser.add_argument("--host", help="smtp host")
    parser.add_argument("--port", help="smtp port")
    parser.add_argument("--username", help="smtp username")
    parser.add_argument("--password", help="smtp password")
    parser.add_argument("--skipverify", dest="skip_verify", action="store_true", default=None, help="skip tls verify")
    parser.add_argument("--sendtype", dest="send_type", help="Plain|StartTLS|TLS (default StartTLS)")
    parser.add_argument("--auth", help="PlainAuth|LoginAuth (default none)")

    parser.add_argument("--build-created", dest="build_created", type=int)
    parser.add_argument("--build-enqueued", dest="build_enqueued", type=int)
    parser.add_argument("--build-finished", dest="build_finished", type=int)
    parser.add_argument("--build-started", dest="build_started", type=int)
    return parser


_LIST_FIELDS = {"to", "cc", "bcc", "reply_to", "read_receipt"}


def apply_overrides(settings: config.Settings, args: argparse.Namespace) -> config.Settings:
    overrides: Dict[str, Any] = {}
    for name, value in vars(args).items():
        if value is None:
            continue
        if name in _LIST_FIELDS:
            value = split_list(value)
        elif name == "send_type":
            value = SendType.parse(value)
        elif name == "auth":
            value = AuthType.parse(value)
        overrides[name] = value
    return replace(settings, **overrides)


def main(argv: Optional[List[str]] = None, env: Optional[Mapping[str, str]] = None) -> int:
    args = build_parser().parse_args(argv)

    print(json.dumps(version_info(), indent=2))

    try:
        settings = apply_overrides(config.Settings.from_env(env), args)
    except ValueError as exc:
        configure_logging(config.DEFAULT_LOG_LEVEL)
        logger.error("Invalid configuration: %s", exc)
        return 1

    configure_logging(settings.log_level, ci=settings.ci)
    logger.info("Vela Email Plugin %s", __version__)

    try:
        run(settings, env=env)
    except EmailPluginError as exc:
        logger.error("%s", exc)
        return 1
    except Exception as exc:  # noqa: BLE001
        logger.exception("Plugin run failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
