# TravelQuotes - B2B Quote Lifecycle Service
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Core infrastructure components for the Travel Quotes Backend."""

from .config import get_settings
from .database import Database
from .security import Security

__all__ = ["get_settings", "Database", "Security"]
