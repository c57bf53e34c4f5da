# TravelQuotes - B2B Quote Lifecycle Service
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Business logic service layer."""

from travel_quotes.core.result_types import Err, Ok, Result

from .authorization import AuthorizationGuard
from .notifications import BrevoNotifier, NotificationDispatcher
from .quote_lifecycle import QuoteLifecycleService

__all__ = [
    "Result",
    "Ok",
    "Err",
    "AuthorizationGuard",
    "BrevoNotifier",
    "NotificationDispatcher",
    "QuoteLifecycleService",
]
