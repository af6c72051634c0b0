"""
GSSMediator Configuration

Process-wide credential cache settings shared by the ticket cache
emulator, the login configuration decorator and the mechanism engine.

Environment:
- KRB5CCNAME: location of the real ticket cache (unset = platform default)
- GSSMEDIATOR_FAKE_KRB5CC: create the decoy cache at KRB5CCNAME itself
- GSSMEDIATOR_FAKE_KRB5CC_MODE: octal file mode for the decoy cache
- KRB5_CONFIG: colon-separated krb5.conf search path
"""

from __future__ import annotations

import getpass
import os
import sys
from typing import List, Mapping, Optional

import attrs
import structlog

from gssmediator.core.types import Principal, Realm

logger = structlog.get_logger()

ENV_TICKET_CACHE = "KRB5CCNAME"
ENV_FAKE_CACHE = "GSSMEDIATOR_FAKE_KRB5CC"
ENV_FAKE_CACHE_MODE = "GSSMEDIATOR_FAKE_KRB5CC_MODE"
ENV_KRB5_CONFIG = "KRB5_CONFIG"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})

DEFAULT_KRB5_CONF_PATHS = (
    "/etc/krb5.conf",
    "/usr/local/etc/krb5.conf",
    "~/.krb5.conf",
)


def parse_bool(value: Optional[str]) -> bool:
    """Interpret an environment flag; unset or unrecognized is False."""
    if value is None:
        return False
    return value.strip().lower() in _TRUE_VALUES


def parse_file_mode(value: Optional[str]) -> Optional[int]:
    """Interpret an octal file mode such as "600" or "0o600"."""
    if value is None or not value.strip():
        return None
    try:
        mode = int(value.strip(), 8)
    except ValueError:
        raise ValueError(f"Invalid file mode {value!r}, expected octal digits") from None
    if not 0 <= mode <= 0o7777:
        raise ValueError(f"File mode out of range: {value!r}")
    return mode


def platform_default_is_in_memory(platform: Optional[str] = None) -> bool:
    """
    Whether the platform's default ticket cache lives in memory.

    Windows uses the LSA cache and macOS the API (KCM) cache.
    """
    platform = platform or sys.platform
    return platform.startswith("win") or platform == "darwin"


# =============================================================================
# CACHE PATH CONFIGURATION
# =============================================================================


@attrs.define
class CachePathConfig:
    """
    Credential cache locations.

    Attributes:
        ticket_cache: Real ticket cache location, None for the platform default
        login_ticket_cache: Location bound into login module configuration
        fake_cache: Create the decoy cache at ticket_cache itself
        fake_cache_mode: File mode applied to the decoy cache
        in_memory_default: Whether the platform default cache is in memory

    Mutated during installation only; readers take no lock.
    """

    ticket_cache: Optional[str] = None
    login_ticket_cache: Optional[str] = attrs.field(
        default=attrs.Factory(lambda self: self.ticket_cache, takes_self=True)
    )
    fake_cache: bool = False
    fake_cache_mode: Optional[int] = None
    in_memory_default: bool = attrs.Factory(platform_default_is_in_memory)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CachePathConfig":
        """
        Create config from environment variables.

        Args:
            environ: Mapping to read from (default: os.environ)
        """
        if environ is None:
            environ = os.environ

        ticket_cache = environ.get(ENV_TICKET_CACHE) or None
        config = cls(
            ticket_cache=ticket_cache,
            fake_cache=parse_bool(environ.get(ENV_FAKE_CACHE)),
            fake_cache_mode=parse_file_mode(environ.get(ENV_FAKE_CACHE_MODE)),
        )

        logger.debug(
            "cache_config_loaded",
            ticket_cache=config.ticket_cache,
            fake_cache=config.fake_cache,
            in_memory_default=config.in_memory_default,
        )
        return config


# =============================================================================
# REALM AND PRINCIPAL DISCOVERY
# =============================================================================


def krb5_conf_paths(environ: Optional[Mapping[str, str]] = None) -> List[str]:
    """krb5.conf candidates, KRB5_CONFIG entries first."""
    if environ is None:
        environ = os.environ

    paths = [p for p in environ.get(ENV_KRB5_CONFIG, "").split(os.pathsep) if p]
    paths.extend(os.path.expanduser(p) for p in DEFAULT_KRB5_CONF_PATHS)
    return paths


def read_default_realm(path: str) -> Optional[str]:
    """
    Read default_realm from the [libdefaults] section of a krb5.conf file.

    Returns:
        Realm name or None if the file has no default_realm
    """
    section = None
    with open(path, "r") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith(("#", ";")):
                continue
            if line.startswith("[") and line.endswith("]"):
                section = line[1:-1].strip().lower()
                continue
            if section != "libdefaults":
                continue
            key, sep, value = line.partition("=")
            if sep and key.strip() == "default_realm" and value.strip():
                return value.strip()
    return None


def get_default_realm(environ: Optional[Mapping[str, str]] = None) -> Optional[Realm]:
    """
    Get the default Kerberos realm from system configuration.

    Returns:
        Default realm or None if none is configured
    """
    for path in krb5_conf_paths(environ):
        if not os.path.isfile(path):
            continue
        try:
            realm = read_default_realm(path)
        except OSError as e:
            logger.debug("krb5_conf_unreadable", path=path, error=str(e))
            continue
        if realm:
            return Realm(realm)
    return None


def get_user_principal(
    realm: Optional[Realm] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Principal:
    """
    Principal of the current user in the default realm.

    Raises:
        LookupError: If no default realm is configured
    """
    if realm is None:
        realm = get_default_realm(environ)
    if realm is None:
        raise LookupError("No default Kerberos realm configured")
    return Principal(name=getpass.getuser(), realm=realm)
