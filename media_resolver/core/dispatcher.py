"""
Trigger protocol.

The host (UI button, popup, CLI) sends `{"action": "extractMedia"}` or
`{"action": "prefetchMedia"}`; `dispatch` runs the matching engine
operation and always answers with a CommandResult instead of raising.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from media_resolver.core.dto.media import DownloadOutcome, Resolution

logger = logging.getLogger(__name__)


class Command(str, Enum):
    EXTRACT_MEDIA = "extractMedia"
    PREFETCH_MEDIA = "prefetchMedia"


@dataclass
class CommandResult:
    action: str
    status: str                         # ok | no_media | error | unknown_action
    context_key: Optional[str] = None
    resolution: Optional[Resolution] = None
    download: Optional[DownloadOutcome] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def to_dict(self) -> Dict[str, Any]:
        resolution = self.resolution
        return {
            "action": self.action,
            "status": self.status,
            "contextKey": self.context_key,
            "source": resolution.source if resolution else None,
            "media": resolution.media.to_dict() if resolution and resolution.media else None,
            "download": self.download.to_dict() if self.download else None,
            "error": self.error,
        }


async def dispatch(engine, message: Any, *, download: bool = True) -> CommandResult:
    action = message.get("action") if isinstance(message, dict) else None
    try:
        command = Command(action)
    except ValueError:
        logger.warning(f"Ignoring unknown action: {action!r}")
        return CommandResult(action=str(action), status="unknown_action")

    try:
        if command is Command.PREFETCH_MEDIA:
            identity = await engine.prefetch()
            return CommandResult(action=command.value, status="ok", context_key=identity.key)

        resolution, outcome = await engine.extract(download=download)
    except Exception as e:
        # Nothing the engine does may take the host down.
        logger.exception(f"{command.value} failed")
        return CommandResult(action=command.value, status="error", error=str(e))

    if not resolution.found:
        return CommandResult(
            action=command.value,
            status="no_media",
            context_key=resolution.context_key,
            resolution=resolution,
        )

    if outcome is not None and not outcome.ok:
        return CommandResult(
            action=command.value,
            status="error",
            context_key=resolution.context_key,
            resolution=resolution,
            download=outcome,
            error=outcome.error,
        )

    return CommandResult(
        action=command.value,
        status="ok",
        context_key=resolution.context_key,
        resolution=resolution,
        download=outcome,
    )
