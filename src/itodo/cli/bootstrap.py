# src/itodo/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- picks the backend gateway (remote HTTP, or the offline in-process one),
- wires the domain store into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.ports import Gateway
from ..core.state import AppState
from ..gateway.http_gateway import HttpGateway
from ..gateway.memory_gateway import OfflineGateway
from ..store.domain_store import DomainStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.export_dir.mkdir(parents=True, exist_ok=True)


def create_gateway(settings) -> Gateway:
    url = str(getattr(settings, "gateway_url", "") or "").strip()
    if not url:
        logger.info("No gateway URL configured; using the offline in-process backend.")
        return OfflineGateway()

    logger.info("Using remote backend at %s", url)
    return HttpGateway(
        url,
        token=getattr(settings, "gateway_token", None),
        timeout_seconds=float(getattr(settings, "gateway_timeout_seconds", 10.0)),
    )


def create_initial_state(*, settings=None, gateway: Gateway | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings and the gateway injectable makes the app easier to test.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if gateway is None:
        gateway = create_gateway(settings)

    return AppState(settings=settings, gateway=gateway, store=DomainStore(gateway))


async def shutdown_state(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        await state.gateway.aclose()
    except Exception:
        logger.debug("Gateway close failed.", exc_info=True)
