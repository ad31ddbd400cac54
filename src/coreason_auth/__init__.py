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
Pluggable authentication orchestration: OAuth2 sign-in, account linking, magic links, API keys and sessions.
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .config import CoreasonAuthConfig
from .database import DatabaseProvider, GenericDatabaseProvider, MemoryDatabaseProvider
from .exceptions import CoreasonAuthError
from .manager import AuthManager
from .models import ResolvedSession
from .responses import AuthResponse, CookieInstruction

__all__ = [
    "AuthManager",
    "AuthResponse",
    "CookieInstruction",
    "CoreasonAuthConfig",
    "CoreasonAuthError",
    "DatabaseProvider",
    "GenericDatabaseProvider",
    "MemoryDatabaseProvider",
    "ResolvedSession",
]
