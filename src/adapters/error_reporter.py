"""Error reporting adapter."""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Optional

LOGGER = logging.getLogger(__name__)


class LoggingErrorReporter:
    """ErrorReporterPort that logs failures with the triggering update attached."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or LOGGER

    def report(self, error: BaseException, update: Optional[Mapping[str, Any]] = None) -> None:
        update_id = update.get("update_id") if update else None
        raw = json.dumps(update, ensure_ascii=False, default=str) if update is not None else "-"
        self._logger.error(
            "Handle update %s failed: %s\nupdate: %s",
            update_id,
            error,
            raw,
            exc_info=(type(error), error, error.__traceback__),
        )
