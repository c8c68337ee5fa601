"""Connection lifecycle: authenticate with retry, probe, tear down.

``ConnectionManager`` owns the application's single engine.  It is created
once at process start, ``connect()`` is called on the startup path (and may
block for up to ``max_retries * retry_delay`` seconds), and ``close()``
releases every pooled connection at shutdown.

Usage::

    manager = ConnectionManager.from_settings(get_settings())
    manager.connect()                 # raises ConnectionExhausted when down
    Session = manager.session_factory
    ...
    manager.close()
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from shop_spine.core.errors import ConnectionExhausted, HealthCheckFailed
from shop_spine.core.settings import Settings
from shop_spine.db.engine import ShopSession, engine_from_settings, shop_session_factory
from shop_spine.db.monitor import DatabaseMonitor
from shop_spine.observability.logging import get_logger

logger = get_logger(__name__)


class ConnectionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    CONNECTED = "connected"
    FAILED = "failed"


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-delay retry for the startup connect.

    Attributes:
        max_attempts: Total attempts, including the first one
        delay: Seconds to wait between two attempts
    """

    max_attempts: int = 5
    delay: float = 5.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay < 0:
            raise ValueError("delay must not be negative")

    def should_retry(self, attempt: int) -> bool:
        """``attempt`` is the 1-based number of the attempt that just failed."""
        return attempt < self.max_attempts


class ConnectionManager:
    """Owns the engine and its authentication state."""

    def __init__(
        self,
        engine: Engine,
        *,
        retry_policy: RetryPolicy | None = None,
        monitor: DatabaseMonitor | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._engine = engine
        self.retry_policy = retry_policy or RetryPolicy()
        self.monitor = monitor
        self._sleep = sleep
        self._state = ConnectionState.UNAUTHENTICATED
        self._session_factory: sessionmaker[ShopSession] | None = None

    @classmethod
    def from_settings(cls, settings: Settings, *, with_monitor: bool = True) -> ConnectionManager:
        """Build engine, retry policy and (optionally) an installed monitor from settings."""
        engine = engine_from_settings(settings)
        monitor = None
        if with_monitor:
            monitor = DatabaseMonitor(engine, slow_query_threshold_ms=settings.slow_query_threshold_ms)
            monitor.setup_query_logging()
        return cls(
            engine,
            retry_policy=RetryPolicy(
                max_attempts=settings.db_connect_max_retries,
                delay=settings.db_connect_retry_delay_seconds,
            ),
            monitor=monitor,
        )

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def session_factory(self) -> sessionmaker[ShopSession]:
        if self._session_factory is None:
            self._session_factory = shop_session_factory(self._engine)
        return self._session_factory

    def connect(self) -> bool:
        """Authenticate against the database, retrying with a fixed delay.

        Returns:
            ``True`` once a connection round-trips.

        Raises:
            ConnectionExhausted: every attempt failed. Not retried further.
        """
        max_attempts = self.retry_policy.max_attempts
        attempt = 0
        while True:
            attempt += 1
            try:
                with self._engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
            except Exception as e:
                self._state = ConnectionState.FAILED
                if self.monitor is not None:
                    self.monitor.record_connection_failure()
                logger.error(
                    "database_connect_failed",
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error=str(e),
                )
                if not self.retry_policy.should_retry(attempt):
                    raise ConnectionExhausted(attempt, cause=e) from e
                self._sleep(self.retry_policy.delay)
                continue

            self._state = ConnectionState.CONNECTED
            logger.info("database_connected", attempt=attempt, url=self._engine.url.render_as_string())
            return True

    def health_check(self) -> bool:
        """Run ``SELECT 1``; ``False`` on any error, which is logged."""
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            return False

    def require_healthy(self) -> None:
        """Raise :class:`HealthCheckFailed` when :meth:`health_check` fails."""
        if not self.health_check():
            raise HealthCheckFailed()

    def close(self) -> None:
        """Release every pooled connection."""
        if self.monitor is not None:
            self.monitor.remove_query_logging()
        self._engine.dispose()
        self._state = ConnectionState.UNAUTHENTICATED
        logger.info("database_disconnected")
