# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Transport layer: algorithm suites, credentials and negotiation."""

from __future__ import annotations

from sshdeck.transport.algorithms import FALLBACK_SUITE, PRIMARY_SUITE, AlgorithmSuite
from sshdeck.transport.credentials import Credentials, resolve_credentials
from sshdeck.transport.negotiator import ConnectionNegotiator, NegotiatedTransport, TransportObserver

__all__ = [
    "FALLBACK_SUITE",
    "PRIMARY_SUITE",
    "AlgorithmSuite",
    "ConnectionNegotiator",
    "Credentials",
    "NegotiatedTransport",
    "TransportObserver",
    "resolve_credentials",
]
