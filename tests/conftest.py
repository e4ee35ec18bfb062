# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from itodo.cli.bootstrap import create_initial_state
from itodo.core.state import AppState
from itodo.gateway.memory_gateway import OfflineGateway
from itodo.store.domain_store import DomainStore

from .fakes import FIXED_NOW, GatedGateway


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the CLI.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="itodo-test",
        log_level="DEBUG",
        console_enabled=False,
        gateway_url="",
        gateway_token=None,
        gateway_timeout_seconds=1.0,
        data_dir=tmp_path / "data",
        export_dir=tmp_path / "exports",
    )


@pytest.fixture()
def offline() -> OfflineGateway:
    return OfflineGateway(clock=lambda: FIXED_NOW)


@pytest.fixture()
def gateway(offline: OfflineGateway) -> GatedGateway:
    return GatedGateway(offline)


@pytest.fixture()
def store(gateway: GatedGateway) -> DomainStore:
    return DomainStore(gateway)


@pytest.fixture()
def state(settings: SimpleNamespace, offline: OfflineGateway) -> AppState:
    return create_initial_state(settings=settings, gateway=offline)
