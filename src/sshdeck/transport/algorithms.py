# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Algorithm suites offered during SSH handshake negotiation.

Two tiers are offered. The primary tier covers modern servers and most
legacy ones. The fallback tier is disjoint from it and holds only the most
widely deployed legacy algorithms; it is tried on a fresh transport when
the server rejects everything in the primary tier.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from asyncssh.encryption import get_encryption_algs
from asyncssh.kex import get_kex_algs
from asyncssh.mac import get_mac_algs

from sshdeck.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class AlgorithmSuite:
    name: str
    kex: tuple[str, ...]
    ciphers: tuple[str, ...]
    macs: tuple[str, ...]

    def to_options(self) -> dict[str, Any]:
        """Build asyncssh connect options, dropping algorithms asyncssh lacks.

        A category that filters down to nothing is left out so the library
        default applies instead of an empty offer.
        """
        kex_supported, cipher_supported, mac_supported = _supported_algorithms()
        options: dict[str, Any] = {}
        for option, wanted, supported in (
            ("kex_algs", self.kex, kex_supported),
            ("encryption_algs", self.ciphers, cipher_supported),
            ("mac_algs", self.macs, mac_supported),
        ):
            offered = [alg for alg in wanted if alg in supported]
            if offered:
                options[option] = offered
            else:
                logger.warning("suite_category_empty", suite=self.name, option=option)
        return options


@lru_cache(maxsize=1)
def _supported_algorithms() -> tuple[frozenset[str], frozenset[str], frozenset[str]]:
    def _names(algs: list[bytes]) -> frozenset[str]:
        return frozenset(alg.decode("ascii") for alg in algs)

    return _names(get_kex_algs()), _names(get_encryption_algs()), _names(get_mac_algs())


PRIMARY_SUITE = AlgorithmSuite(
    name="primary",
    kex=(
        "curve25519-sha256",
        "curve25519-sha256@libssh.org",
        "ecdh-sha2-nistp256",
        "ecdh-sha2-nistp384",
        "ecdh-sha2-nistp521",
        "diffie-hellman-group-exchange-sha256",
        "diffie-hellman-group16-sha512",
        "diffie-hellman-group14-sha256",
    ),
    ciphers=(
        "chacha20-poly1305@openssh.com",
        "aes256-gcm@openssh.com",
        "aes128-gcm@openssh.com",
        "aes256-ctr",
        "aes192-ctr",
        "aes256-cbc",
        "aes192-cbc",
    ),
    macs=(
        "hmac-sha2-256-etm@openssh.com",
        "hmac-sha2-512-etm@openssh.com",
        "hmac-sha1-etm@openssh.com",
        "hmac-sha2-512",
    ),
)

FALLBACK_SUITE = AlgorithmSuite(
    name="fallback",
    kex=(
        "diffie-hellman-group14-sha1",
        "diffie-hellman-group-exchange-sha1",
        "diffie-hellman-group1-sha1",
    ),
    ciphers=(
        "aes128-ctr",
        "aes128-cbc",
        "3des-cbc",
    ),
    macs=(
        "hmac-sha1",
        "hmac-sha2-256",
    ),
)
