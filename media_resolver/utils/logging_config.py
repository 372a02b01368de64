"""
Categorized logging for the resolver.

Every module logs through `logging.getLogger(__name__)`; this module groups
those loggers into a handful of categories whose levels can be changed
together and are remembered in the config store as `log_level_<category>`.
"""
import logging
from typing import Dict, Iterable, List, Optional
from pathlib import Path
from logging.handlers import TimedRotatingFileHandler


class LoggerCategory:
    """Named categories for resolver loggers"""
    CORE = "core"                  # Arbiter, engine, caches, context keys
    API = "api"                    # Backend lookups (oEmbed, media info)
    NETWORK = "network"            # HTTP sessions, cookies, proxy
    DOM = "dom"                    # Page evidence, carousel, performance timings
    DOWNLOAD = "download"          # Media download, validation, blob finalization
    SETTINGS = "settings"          # Settings and configuration storage


DEFAULT_LOG_LEVELS = {
    LoggerCategory.CORE: logging.INFO,
    LoggerCategory.API: logging.INFO,
    LoggerCategory.NETWORK: logging.INFO,
    LoggerCategory.DOM: logging.WARNING,  # one line per element scan otherwise
    LoggerCategory.DOWNLOAD: logging.INFO,
    LoggerCategory.SETTINGS: logging.WARNING,
}

_PKG = "media_resolver.core"

CATEGORY_MODULES: Dict[str, List[str]] = {
    LoggerCategory.CORE: [
        _PKG,
        f"{_PKG}.arbiter",
        f"{_PKG}.engine",
        f"{_PKG}.dispatcher",
        f"{_PKG}.context",
        f"{_PKG}.context_resolver",
        f"{_PKG}.cache",
        f"{_PKG}.media_manager",
    ],
    LoggerCategory.API: [f"{_PKG}.api", f"{_PKG}.api_fetcher"],
    LoggerCategory.NETWORK: [f"{_PKG}.http_client"],
    LoggerCategory.DOM: [
        f"{_PKG}.evidence",
        f"{_PKG}.dom_scanner",
        f"{_PKG}.dom_utils",
        f"{_PKG}.carousel",
        f"{_PKG}.performance_scanner",
    ],
    LoggerCategory.DOWNLOAD: [
        f"{_PKG}.download_manager",
        f"{_PKG}.media_validator",
        f"{_PKG}.blob_resolver",
    ],
    LoggerCategory.SETTINGS: [f"{_PKG}.database", f"{_PKG}.settings"],
}

# Third-party loggers that drown out ours at INFO
QUIET_LOGGERS = ("aiohttp", "asyncio", "keyring")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def category_for(logger_name: str) -> Optional[str]:
    """Category owning `logger_name` (longest module prefix wins)."""
    best, best_len = None, -1
    for category, modules in CATEGORY_MODULES.items():
        for module in modules:
            if (logger_name == module or logger_name.startswith(module + ".")) and len(module) > best_len:
                best, best_len = category, len(module)
    return best


class LoggingManager:
    """Holds per-category levels and installs the resolver's handlers"""

    def __init__(self, log_dir: Optional[Path] = None, db_manager=None):
        """
        Args:
            log_dir: Where media_resolver.log rotates. Defaults to ~/.media-resolver/logs
            db_manager: DatabaseManager remembering category levels (optional)
        """
        self.log_dir = log_dir or (Path.home() / ".media-resolver" / "logs")
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.db_manager = db_manager
        self._levels: Dict[str, int] = {
            category: self._stored_level(category, default)
            for category, default in DEFAULT_LOG_LEVELS.items()
        }

    def _stored_level(self, category: str, default: int) -> int:
        if not self.db_manager:
            return default
        name = self.db_manager.get_config(f"log_level_{category}")
        if not name:
            return default
        level = logging.getLevelName(str(name).upper())
        return level if isinstance(level, int) else default

    def get_category_level(self, category: str) -> int:
        return self._levels.get(category, logging.INFO)

    def set_category_level(self, category: str, level: int):
        """Change a category's level now and remember it for the next run"""
        self._levels[category] = level
        if self.db_manager:
            self.db_manager.set_config(f"log_level_{category}", logging.getLevelName(level))
        self._apply(CATEGORY_MODULES.get(category, ()), level)

    @staticmethod
    def _apply(modules: Iterable[str], level: int):
        for module in modules:
            logging.getLogger(module).setLevel(level)

    def _build_handlers(self) -> List[logging.Handler]:
        formatter = logging.Formatter(LOG_FORMAT)

        # Rotate at midnight, keep a week
        file_handler = TimedRotatingFileHandler(
            self.log_dir / "media_resolver.log",
            when="midnight",
            interval=1,
            backupCount=7,
            encoding="utf-8",
        )
        console = logging.StreamHandler()

        handlers: List[logging.Handler] = [file_handler, console]
        for handler in handlers:
            handler.setFormatter(formatter)
        return handlers

    def setup_logging(self, root_level: int = logging.INFO, verbose: bool = False):
        """
        Replace the root handlers and apply every category level.

        Args:
            root_level: Root logger level (default: INFO)
            verbose: Force every category to DEBUG for this run
        """
        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in self._build_handlers():
            root.addHandler(handler)
        root.setLevel(logging.DEBUG if verbose else root_level)

        for category, level in self._levels.items():
            self._apply(CATEGORY_MODULES[category], logging.DEBUG if verbose else level)

        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


_logging_manager: Optional[LoggingManager] = None


def get_logging_manager(db_manager=None, log_dir: Optional[Path] = None) -> LoggingManager:
    """Process-wide manager, created on first use"""
    global _logging_manager
    if _logging_manager is None:
        _logging_manager = LoggingManager(log_dir=log_dir, db_manager=db_manager)
    return _logging_manager


def setup_logging(db_manager=None, log_dir: Optional[Path] = None, verbose: bool = False) -> LoggingManager:
    manager = get_logging_manager(db_manager, log_dir)
    manager.setup_logging(verbose=verbose)
    return manager
