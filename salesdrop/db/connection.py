from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

import psycopg2
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
)

from ..models.config_models import ConnectionConfig, RetryPolicy

"""Connection acquisition with a bounded retry policy.

Only establishing the connection is retried. Once connected nothing else is
retried: row failures are recorded, transaction failures roll back.
The connection is opened in autocommit mode; the coordinator issues explicit
BEGIN / COMMIT / ROLLBACK around the load.
"""

logger = logging.getLogger(__name__)

RETRYABLE_EXCEPTIONS: tuple[type[BaseException], ...] = (psycopg2.OperationalError,)


class TransientConnectionError(Exception):
    """Connection could not be established within the retry budget."""


def _wait_from_policy(policy: RetryPolicy) -> Callable[[RetryCallState], float]:
    def _wait(retry_state: RetryCallState) -> float:
        return policy.backoff(retry_state.attempt_number)

    return _wait


def connect_with_retry(
    conn_cfg: ConnectionConfig,
    policy: RetryPolicy,
    *,
    connect: Callable[..., Any] = psycopg2.connect,
    sleep: Callable[[float], None] | None = None,
) -> Any:
    """Open a connection, retrying transient failures per policy.

    Raises:
        TransientConnectionError: every attempt failed
    """
    attempts = max(policy.max_attempts, 1)
    retrying_kwargs: dict[str, Any] = {
        "stop": stop_after_attempt(attempts),
        "wait": _wait_from_policy(policy),
        "retry": retry_if_exception_type(RETRYABLE_EXCEPTIONS),
        "reraise": False,
    }
    if sleep is not None:
        retrying_kwargs["sleep"] = sleep

    try:
        for attempt in Retrying(**retrying_kwargs):
            with attempt:
                n = attempt.retry_state.attempt_number
                logger.info("Connecting to %s (attempt %d/%d)...", conn_cfg.name, n, attempts)
                try:
                    conn = connect(conn_cfg.dsn())
                except RETRYABLE_EXCEPTIONS as e:
                    logger.error("Connection attempt %d failed: %s", n, e)
                    raise
    except RetryError as e:
        last = e.last_attempt.exception()
        raise TransientConnectionError(
            f"Failed to connect to {conn_cfg.name} after {attempts} attempts: {last}"
        ) from last

    conn.autocommit = True
    logger.info("Connected to %s successfully", conn_cfg.name)
    return conn


@contextmanager
def open_connection(
    conn_cfg: ConnectionConfig,
    policy: RetryPolicy,
    *,
    connect: Callable[..., Any] = psycopg2.connect,
    sleep: Callable[[float], None] | None = None,
) -> Iterator[Any]:
    """Context manager: connection acquired with retry, always closed on exit."""
    conn = connect_with_retry(conn_cfg, policy, connect=connect, sleep=sleep)
    try:
        yield conn
    finally:
        try:
            conn.close()
        except Exception as e:  # pragma: no cover
            logger.warning("failed closing connection %s: %s", conn_cfg.name, e)
