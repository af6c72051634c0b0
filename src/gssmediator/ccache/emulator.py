"""
Ticket Cache Emulation

A login module that authenticates from a ticket cache insists on reading
a krbtgt credential from somewhere, even when the mechanism engine never
uses it. Where the real cache cannot be read as a file (the Windows LSA
cache, macOS API caches, kernel keyrings), a decoy cache holding one
syntactically valid krbtgt credential with an empty key lets the login
module proceed without exposing any real secret.

Policy, evaluated once per install:
- In-memory cache configured (or unset where the platform default is in
  memory): write the decoy to a fresh temp file removed at exit and bind
  that path for login.
- File cache configured with fake_cache set: write the decoy at that path
  and clear the real path, so the engine uses the platform default.
- File cache configured without fake_cache: leave it alone and bind the
  real path.
"""

from __future__ import annotations

import atexit
import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import attrs
import structlog

from gssmediator.ccache.format import (
    KeyBlock,
    TicketCacheRecord,
    ValidityWindow,
    encode_ticket,
    serialize_cache,
)
from gssmediator.config import CachePathConfig, get_user_principal
from gssmediator.core.exceptions import CacheCreationFailure, GSSMediatorError
from gssmediator.core.types import EncryptionType, Principal

logger = structlog.get_logger()

# 10 years, inside the unsigned 32-bit cache time range until 2096.
DECOY_LIFETIME = timedelta(days=3653)

DECOY_ENCTYPE = EncryptionType.AES128_CTS_HMAC_SHA1_96

IN_MEMORY_SCHEMES = ("MSLSA:", "API:", "KCM:", "KEYRING:", "MEMORY:")

FILE_SCHEME = "FILE:"

TEMP_PREFIX = "krb5_cc"
TEMP_SUFFIX = "_fake"


def is_in_memory_cache(ticket_cache: Optional[str], in_memory_default: bool) -> bool:
    """
    Whether a cache location refers to a non-file cache.

    Args:
        ticket_cache: Configured location, None for the platform default
        in_memory_default: Whether the platform default cache is in memory
    """
    if not ticket_cache:
        return in_memory_default
    return ticket_cache.upper().startswith(IN_MEMORY_SCHEMES)


def cache_file_path(ticket_cache: str) -> str:
    """Strip an optional FILE: prefix from a cache location."""
    if ticket_cache.upper().startswith(FILE_SCHEME):
        return ticket_cache[len(FILE_SCHEME):]
    return ticket_cache


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("fake_ccache_cleanup_failed", path=path, error=str(e))


# =============================================================================
# FABRICATION
# =============================================================================


def check_writable(path: str) -> None:
    """
    Check up front that a cache file can be written at path.

    Raises:
        CacheCreationFailure: naming the path and the problem
    """
    target = path
    if not os.path.exists(target):
        target = os.path.dirname(os.path.abspath(path))
        if not os.path.isdir(target):
            raise CacheCreationFailure(path, "parent doesn't exist or is not a directory")

    if not os.access(target, os.W_OK):
        raise CacheCreationFailure(
            path, "this process doesn't have permission to modify or create it"
        )


def build_decoy_record(
    client: Principal,
    now: datetime,
    lifetime: timedelta = DECOY_LIFETIME,
) -> TicketCacheRecord:
    """
    Build a krbtgt credential for client carrying no key material.

    Raises:
        TimestampOverflow: If now + lifetime does not fit the cache format
    """
    krbtgt = Principal.krbtgt(client.realm)
    return TicketCacheRecord(
        client=client,
        server=krbtgt,
        key=KeyBlock(enctype=DECOY_ENCTYPE, material=b""),
        times=ValidityWindow.spanning(now, lifetime),
        ticket=encode_ticket(krbtgt, DECOY_ENCTYPE, b""),
    )


def create_fake_cache(
    path: str,
    client: Principal,
    now: Optional[datetime] = None,
    lifetime: timedelta = DECOY_LIFETIME,
    mode: Optional[int] = None,
) -> TicketCacheRecord:
    """
    Write a decoy cache holding one krbtgt credential for client.

    Returns:
        The record written

    Raises:
        CacheCreationFailure: If the path is unusable or writing fails
    """
    check_writable(path)

    if now is None:
        now = datetime.now(timezone.utc)

    try:
        record = build_decoy_record(client, now, lifetime)
        data = serialize_cache(client, [record])
    except (GSSMediatorError, ValueError) as e:
        raise CacheCreationFailure(path, f"failed to build credentials: {e}") from e

    try:
        with open(path, "wb") as f:
            f.write(data)
        if mode is not None:
            os.chmod(path, mode)
    except OSError as e:
        raise CacheCreationFailure(path, f"failed to write: {e.strerror or e}") from e

    logger.info(
        "fake_ccache_created",
        path=path,
        client=str(record.client),
        server=str(record.server),
        end_time=record.times.end_time.isoformat(),
    )
    return record


# =============================================================================
# EMULATOR
# =============================================================================


@attrs.define
class TicketCacheEmulator:
    """
    Chooses and creates the ticket cache the login module will read.

    Example:
        config = CachePathConfig.from_env()
        emulator = TicketCacheEmulator(config)
        login_cache = emulator.emulate()
    """

    config: CachePathConfig
    principal_source: Callable[[], Principal] = get_user_principal
    clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)
    lifetime: timedelta = DECOY_LIFETIME
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def emulate(self) -> Optional[str]:
        """
        Apply the emulation policy.

        Returns:
            Cache path to bind for login, or None to leave login
            configuration untouched

        Raises:
            CacheCreationFailure: If a decoy was required but could not be made
        """
        ticket_cache = self.config.ticket_cache

        if is_in_memory_cache(ticket_cache, self.config.in_memory_default):
            return self._emulate_in_temp_file()

        if ticket_cache is None:
            self._logger.info("fake_ccache_skipped", reason="platform default is file based")
            return None

        path = cache_file_path(ticket_cache)
        if self.config.fake_cache:
            self._create(path)
            # The engine must not read the decoy as the real cache
            self.config.ticket_cache = None
            return path

        self._logger.info("fake_ccache_skipped", reason="real file cache", path=ticket_cache)
        return ticket_cache

    def _emulate_in_temp_file(self) -> str:
        try:
            fd, path = tempfile.mkstemp(prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX)
        except OSError as e:
            raise CacheCreationFailure(
                os.path.join(tempfile.gettempdir(), TEMP_PREFIX + "*" + TEMP_SUFFIX),
                f"failed to create temp file: {e.strerror or e}",
            ) from e
        os.close(fd)
        atexit.register(_remove_quietly, path)

        try:
            self._create(path)
        except CacheCreationFailure:
            _remove_quietly(path)
            raise
        return path

    def _create(self, path: str) -> None:
        try:
            client = self.principal_source()
        except LookupError as e:
            raise CacheCreationFailure(path, f"cannot determine client principal: {e}") from e

        create_fake_cache(
            path,
            client,
            now=self.clock(),
            lifetime=self.lifetime,
            mode=self.config.fake_cache_mode,
        )
