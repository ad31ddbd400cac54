# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_auth

from coreason_auth.database.base import DatabaseProvider
from coreason_auth.database.generic import EntityKind, EntityStore, GenericDatabaseProvider
from coreason_auth.database.memory import MemoryDatabaseProvider, MemoryEntityStore

__all__ = [
    "DatabaseProvider",
    "EntityKind",
    "EntityStore",
    "GenericDatabaseProvider",
    "MemoryDatabaseProvider",
    "MemoryEntityStore",
]
