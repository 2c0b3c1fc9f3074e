"""Shared fixtures for Manager controller tests."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

import pytest
import structlog

from manager_operator.integrations.kubernetes.config import OperatorConfig
from manager_operator.services.manager.context import ReconcileContext, ReconcileKey
from manager_operator.services.manager.readiness import ReadyFlag
from manager_operator.services.manager.status import StatusManager


@pytest.fixture
def ready_flag() -> ReadyFlag:
    """License API latch that is already set."""
    flag = ReadyFlag()
    flag.mark_ready()
    return flag


@pytest.fixture
def pass_log() -> structlog.BoundLogger:
    """Logger bound the way a reconcile pass binds its own."""
    return structlog.get_logger().bind(test=True)


@pytest.fixture
def make_context(
    operator_config: OperatorConfig, ready_flag: ReadyFlag
) -> Callable[..., ReconcileContext]:
    """Factory building a ReconcileContext over a given store."""

    def _make(
        store: Any,
        *,
        flag: ReadyFlag | None = None,
        stop_event: threading.Event | None = None,
        config: OperatorConfig | None = None,
    ) -> ReconcileContext:
        log = structlog.get_logger().bind(test=True)
        return ReconcileContext(
            key=ReconcileKey("", "tigera-secure"),
            store=store,
            config=config or operator_config,
            status=StatusManager(store, log=log),
            license_api_ready=flag or ready_flag,
            log=log,
            stop_event=stop_event,
        )

    return _make
