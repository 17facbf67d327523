from __future__ import annotations

import logging
import re
from typing import Mapping

from jinja2 import ChainableUndefined, Environment, TemplateError, TemplateSyntaxError
from lxml import etree
from premailer import Premailer

from .errors import EmailPluginError

logger = logging.getLogger(__name__)

# Rendered in place of a placeholder whose key is not in the table.
NO_VALUE = "<no value>"

_ACTION_RE = re.compile(r"\{\{(.*?)\}\}", flags=re.DOTALL)
_DOT_REF_RE = re.compile(r"(^|[\s(|,!=<>+\-*/])\.([A-Za-z_][A-Za-z0-9_]*)")


class TemplateParseError(EmailPluginError):
    """Raised when a template cannot be compiled."""


class TemplateRenderError(EmailPluginError):
    """Raised when a compiled template fails while rendering."""


class CSSInlineError(EmailPluginError):
    """Raised when CSS cannot be inlined into an HTML body."""


class _NoValue(ChainableUndefined):
    def __str__(self) -> str:
        return NO_VALUE

    def __html__(self) -> str:
        return "&lt;no value&gt;"


def _placeholder_env(autoescape: bool) -> Environment:
    # Only {{ }} is template syntax; block and comment delimiters can never
    # match real text, and no globals shadow missing keys.
    env = Environment(
        undefined=_NoValue,
        autoescape=autoescape,
        keep_trailing_newline=True,
        block_start_string="\x00{%",
        block_end_string="%}\x00",
        comment_start_string="\x00{#",
        comment_end_string="#}\x00",
        line_statement_prefix=None,
        line_comment_prefix=None,
    )
    env.globals.clear()
    return env


_TEXT_ENV = _placeholder_env(autoescape=False)
_HTML_ENV = _placeholder_env(autoescape=True)


def to_jinja(template: str) -> str:
    """Rewrite ``{{ .KEY }}`` references into plain Jinja names."""

    def _rewrite(match: re.Match) -> str:
        return "{{" + _DOT_REF_RE.sub(r"\1\2", match.group(1)) + "}}"

    return _ACTION_RE.sub(_rewrite, template)


def render(template: str, table: Mapping[str, str], *, autoescape: bool = False) -> str:
    env = _HTML_ENV if autoescape else _TEXT_ENV
    try:
        compiled = env.from_string(to_jinja(template))
    except TemplateSyntaxError as exc:
        raise TemplateParseError(f"invalid template (line {exc.lineno}): {exc.message}") from exc
    try:
        return compiled.render(dict(table))
    except TemplateError as exc:
        raise TemplateRenderError(f"failed to render template: {exc}") from exc


def inline_css(html: str) -> str:
    """Move ``<style>`` rules into ``style=`` attributes for mail clients."""

    if not html.strip():
        return html
    try:
        return Premailer(
            html,
            keep_style_tags=False,
            remove_classes=False,
            disable_validation=True,
            allow_network=False,
            cssutils_logging_level=logging.CRITICAL,
        ).transform()
    except etree.LxmlError as exc:
        raise CSSInlineError(f"invalid HTML body: {exc}") from exc
    except Exception as exc:  # noqa: BLE001
        raise CSSInlineError(f"failed to inline CSS: {exc}") from exc
