from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional

from .config import ENV_PREFIX
from .models import BuildTimestamps

logger = logging.getLogger(__name__)


def format_build_time(epoch_seconds: int) -> str:
    """Render epoch seconds as e.g. ``2019-05-01 14:29:18 +0000 UTC``."""

    dt = datetime.fromtimestamp(int(epoch_seconds), tz=timezone.utc)
    return dt.strftime("%Y-%m-%d %H:%M:%S +0000 UTC")


def capture(env: Optional[Mapping[str, str]], timestamps: BuildTimestamps) -> Dict[str, str]:
    """Build the lookup table used to resolve template placeholders.

    Only variables under the build-system prefix are kept. The four readable
    build timestamps are inserted last, so they win over a colliding variable.
    """

    logger.info("Setting up Environment...")
    source = env if env is not None else os.environ

    table = {key: value for key, value in source.items() if key.startswith(ENV_PREFIX)}
    table["BuildCreated"] = format_build_time(timestamps.created)
    table["BuildEnqueued"] = format_build_time(timestamps.enqueued)
    table["BuildFinished"] = format_build_time(timestamps.finished)
    table["BuildStarted"] = format_build_time(timestamps.started)
    logger.debug("Captured %s template variables", len(table))
    return table
