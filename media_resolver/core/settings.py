from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

from media_resolver.core.http_client import DEFAULT_IG_APP_ID, HttpClientConfig

logger = logging.getLogger(__name__)


SESSION_ID_KEY = "sessionid"

# Fields stored under a different config key
CONFIG_KEYS = {"session_id": SESSION_ID_KEY}


@dataclass
class EngineSettings:
    """Tunables for one engine instance, persisted in the config table."""

    dom_cache_ttl: float = 3.5
    api_cache_ttl: float = 10.0
    dom_retry_count: int = 6
    dom_retry_delay: float = 0.5
    video_wait_attempts: int = 10
    video_wait_interval: float = 0.25
    story_id_attempts: int = 5
    story_id_delay: float = 1.0
    story_perf_max_age_ms: int = 120_000
    post_perf_max_age_ms: int = 30_000
    handshake_timeout: float = 5.0
    min_video_bytes: int = 120 * 1024
    init_segment_max_bytes: int = 2 * 1024 * 1024
    download_dir: Optional[str] = None
    ig_app_id: str = DEFAULT_IG_APP_ID
    proxy_url: Optional[str] = None
    session_id: Optional[str] = None
    cookies_file: Optional[str] = None

    @classmethod
    def from_db(cls, db) -> "EngineSettings":
        """
        Read every known key from the config store.

        A value that does not parse as the field's type is logged and the
        default kept, so one bad row never blocks the engine.
        """
        settings = cls()
        for field in fields(cls):
            raw = db.get_config(CONFIG_KEYS.get(field.name, field.name))
            if raw in (None, ""):
                continue

            default = getattr(settings, field.name)
            try:
                if isinstance(default, int):
                    value = int(raw)
                elif isinstance(default, float):
                    value = float(raw)
                else:
                    value = str(raw)
            except (TypeError, ValueError):
                logger.warning(f"Ignoring invalid setting {field.name}={raw!r}, using {default!r}")
                continue
            setattr(settings, field.name, value)
        return settings

    def http_config(self, cookie_jar_path: Optional[Path] = None) -> HttpClientConfig:
        cookies = cookie_jar_path or (Path(self.cookies_file) if self.cookies_file else None)
        return HttpClientConfig(
            cookie_jar_path=cookies,
            session_id=self.session_id,
            ig_app_id=self.ig_app_id,
            proxy_url=self.proxy_url,
        )
