# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_auth

"""
In-process storage backend, for tests and single-process development servers.
"""

import copy
from collections.abc import Mapping
from typing import Any

import anyio

from coreason_auth.database.generic import EntityKind, GenericDatabaseProvider, Key, Row


class MemoryEntityStore:
    """
    `EntityStore` over nested dicts, guarded by an `anyio.Lock`.

    Rows are deep-copied on the way in and out.
    """

    def __init__(self) -> None:
        self._tables: dict[EntityKind, dict[Key, Row]] = {kind: {} for kind in EntityKind}
        self._lock = anyio.Lock()

    async def insert(self, kind: EntityKind, key: Key, row: Row, unique: tuple[str, ...] = ()) -> bool:
        async with self._lock:
            table = self._tables[kind]
            if key in table:
                return False
            for field in unique:
                if any(existing.get(field) == row.get(field) for existing in table.values()):
                    return False
            table[key] = copy.deepcopy(row)
            return True

    async def get(self, kind: EntityKind, key: Key) -> Row | None:
        async with self._lock:
            row = self._tables[kind].get(key)
            return copy.deepcopy(row) if row is not None else None

    async def update(self, kind: EntityKind, key: Key, changes: Mapping[str, Any]) -> Row | None:
        async with self._lock:
            row = self._tables[kind].get(key)
            if row is None:
                return None
            row.update(copy.deepcopy(dict(changes)))
            return copy.deepcopy(row)

    async def delete(self, kind: EntityKind, key: Key) -> bool:
        async with self._lock:
            return self._tables[kind].pop(key, None) is not None

    async def find(self, kind: EntityKind, **filters: Any) -> list[Row]:
        async with self._lock:
            return [
                copy.deepcopy(row)
                for row in self._tables[kind].values()
                if all(row.get(field) == value for field, value in filters.items())
            ]

    def count(self, kind: EntityKind) -> int:
        return len(self._tables[kind])


class MemoryDatabaseProvider(GenericDatabaseProvider):
    """A `GenericDatabaseProvider` backed by a fresh `MemoryEntityStore`."""

    store: MemoryEntityStore

    def __init__(self) -> None:
        super().__init__(MemoryEntityStore())
