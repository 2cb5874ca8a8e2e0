"""Connector configuration.

The only configuration value is the exposed path: the directory under which
every repository address is resolved. It is read by every service call and
written rarely (from the configuration CLI), so it sits behind a
reader/writer lock. The lock guards the value only; callers hold it while
reading or writing the path and release it before touching the filesystem.
"""

from __future__ import annotations

import json
import os
import threading
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from fsconnector.core.constants import (
    CONFIG_PATH_ENV,
    DEFAULT_CONFIG_PATH,
    EXPOSED_PATH_ENV,
    get_str,
)
from fsconnector.core.errors import ConfigurationError
from fsconnector.fs.paths import build_full_path

__all__ = ["ConnectorConfig", "ConnectorSettings", "ReadWriteLock", "resolve_config_path"]

logger = structlog.get_logger(__name__)


def resolve_config_path(config_path: str | Path | None = None) -> Path:
    """Resolve the on-disk path of the configuration file.

    Args:
        config_path: Optional explicit path

    Returns:
        The explicit path, else $FSCONNECTOR_CONFIG, else the default
    """
    chosen: str | Path | None = config_path
    env_path = os.getenv(CONFIG_PATH_ENV)
    if chosen is None and env_path:
        chosen = env_path
    if chosen is None:
        chosen = DEFAULT_CONFIG_PATH
    return Path(chosen).expanduser()


class ConnectorSettings(BaseModel):
    """Persisted form of the configuration."""

    exposed_path: str = Field(default="", alias="exposedPath")

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ReadWriteLock:
    """A lock admitting many readers or a single writer.

    Writers are preferred: once a writer is waiting, new readers wait too,
    so a steady stream of reads cannot starve a configuration update.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer: int | None = None
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer is not None or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer is not None or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = threading.get_ident()
        try:
            yield
        finally:
            with self._cond:
                self._writer = None
                self._cond.notify_all()

    def write_held(self) -> bool:
        """Return True if the calling thread holds the write lock."""
        return self._writer == threading.get_ident()


class ConnectorConfig:
    """Thread-safe holder of the connector configuration.

    Use ``read_lock()``/``write_lock()`` around accesses to ``exposed_path``.
    ``update()`` and ``load()`` must be called with the write lock held.
    """

    def __init__(
        self, exposed_path: str = "", config_path: str | Path | None = None
    ) -> None:
        self._exposed_path = exposed_path
        self.config_path = resolve_config_path(config_path)
        self._lock = ReadWriteLock()

    @property
    def exposed_path(self) -> str:
        return self._exposed_path

    def read_lock(self) -> AbstractContextManager[None]:
        """Context manager holding the read lock."""
        return self._lock.read()

    def write_lock(self) -> AbstractContextManager[None]:
        """Context manager holding the write lock."""
        return self._lock.write()

    def reset(self) -> None:
        """Clear every configuration value (used by tests)."""
        self._check_write_lock()
        self._exposed_path = ""

    def load(self) -> None:
        """Read the configuration file.

        A missing file leaves the configuration empty. The
        FSCONNECTOR_EXPOSED_PATH environment variable, when set, overrides
        the file.

        Raises:
            ConfigurationError: If the file is a directory or is invalid
        """
        self._check_write_lock()
        path = self.config_path

        env_override = os.getenv(EXPOSED_PATH_ENV)
        if env_override:
            self._exposed_path = env_override
            logger.info("config.loaded", source="env", exposed_path=env_override)
            return

        if path.is_dir():
            raise ConfigurationError(
                get_str("ErrorConfigIsDir", path), config_path=str(path)
            )
        if not path.exists():
            logger.info("config.missing", config_path=str(path))
            return

        try:
            settings = ConnectorSettings.model_validate_json(
                path.read_text(encoding="utf-8")
            )
        except (OSError, ValidationError) as e:
            raise ConfigurationError(
                get_str("ErrorBadConfig", path, e), config_path=str(path)
            ) from e

        self._exposed_path = settings.exposed_path
        logger.info("config.loaded", source=str(path), exposed_path=self._exposed_path)

    def update(self, exposed_path: str) -> None:
        """Set the exposed path and persist it."""
        self._check_write_lock()
        self._exposed_path = exposed_path
        self._save()

    def repository_path(self, address: str) -> Path:
        """Build the full path of a repository address.

        Must be called with the read (or write) lock held.

        Raises:
            ConfigurationError: If no exposed path is configured
            PathOutsideRoot: If the address escapes the exposed path
        """
        if not self._exposed_path:
            raise ConfigurationError(get_str("ErrorNoConfig"))
        return build_full_path(self._exposed_path, address)

    @classmethod
    def from_file(cls, config_path: str | Path | None = None) -> ConnectorConfig:
        """Create a configuration and load it from disk."""
        config = cls(config_path=config_path)
        with config.write_lock():
            config.load()
        return config

    def _save(self) -> None:
        settings = ConnectorSettings(exposed_path=self._exposed_path)
        path = self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = settings.model_dump(by_alias=True)
        path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
        os.chmod(path, 0o600)
        logger.info("config.saved", config_path=str(path))

    def _check_write_lock(self) -> None:
        if not self._lock.write_held():
            raise RuntimeError("Write lock must be held")
