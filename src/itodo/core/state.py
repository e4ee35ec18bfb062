# src/itodo/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..store.domain_store import DomainStore
from .ports import Gateway


@dataclass
class AppState:
    # Settings object (real Settings or a test namespace).
    settings: Any

    gateway: Gateway
    store: DomainStore

    # Last rendered task view; console commands address tasks by 1-based index into it.
    task_view: list[str] = field(default_factory=list)
    list_view: list[str] = field(default_factory=list)
    subtask_view: list[str] = field(default_factory=list)
