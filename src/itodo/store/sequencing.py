# src/itodo/store/sequencing.py

from __future__ import annotations

from typing import Any


class RequestSequencer:
    """
    Monotonic request tokens, one counter per collection key.

    A query takes a token when it is issued; its response may only be
    committed while that token is still the newest for the key. Older
    responses resolving late are discarded instead of overwriting newer ones.

    Point edits (updates, toggles, subtask splices) take a token on the edited
    entity only, issued with ``track_edits=False``. A point response is applied
    through ``claim`` and dropped when a newer edit of the same entity has
    already been applied. Applied point edits are noted against every
    collection key with a query in flight, and the query replays them over its
    response before committing, so a response computed before the edit cannot
    undo it.
    """

    def __init__(self) -> None:
        self._tokens: dict[str, int] = {}
        self._late: dict[str, dict[str, Any]] = {}
        self._claimed: dict[str, int] = {}

    def issue(self, key: str, *, track_edits: bool = True) -> int:
        token = self._tokens.get(key, 0) + 1
        self._tokens[key] = token
        if track_edits:
            self._late[key] = {}
        return token

    def current(self, key: str) -> int:
        return self._tokens.get(key, 0)

    def is_current(self, key: str, token: int) -> bool:
        return self._tokens.get(key, 0) == token

    def claim(self, key: str, token: int) -> bool:
        """Mark ``token`` applied unless a newer one for ``key`` already was."""
        if token < self._claimed.get(key, 0):
            return False
        self._claimed[key] = token
        return True

    def snapshot(self) -> dict[str, int]:
        return dict(self._tokens)

    # ---- edits made while a query is in flight ----

    def note(self, key: str, entity_id: str, entity: Any | None) -> None:
        """Record an edit (None = deleted) if a query for ``key`` is pending."""
        late = self._late.get(key)
        if late is not None:
            late[entity_id] = entity

    def settle(self, key: str) -> dict[str, Any]:
        """Stop recording for ``key`` and return what was noted."""
        return self._late.pop(key, None) or {}


def replay(items: list[Any], late: dict[str, Any], *, append: bool) -> list[Any]:
    """
    Apply late edits to a fetched collection by ``id``.

    Replaced entities keep their position; deletions drop out. With ``append``
    set, edited entities missing from the response are added at the end.
    """
    if not late:
        return items
    merged = {item.id: item for item in items}
    for entity_id, entity in late.items():
        if entity is None:
            merged.pop(entity_id, None)
        elif entity_id in merged or append:
            merged[entity_id] = entity
    return list(merged.values())
