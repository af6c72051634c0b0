"""
Login Module Configuration

Login module configuration as consumed by the login subsystem, and the
decorator that injects the ticket cache location into the Kerberos login
module's options at lookup time.

A process-wide configuration is held here; the login subsystem looks up
entries through get_configuration().
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence

import attrs
import structlog
from attrs import field, validators

from gssmediator.config import CachePathConfig

logger = structlog.get_logger()

KRB5_LOGIN_MODULE = "Krb5LoginModule"

TICKET_CACHE_OPTION = "ticketCache"


class ControlFlag(Enum):
    """How a login module's result affects the overall login."""

    REQUIRED = "required"
    REQUISITE = "requisite"
    SUFFICIENT = "sufficient"
    OPTIONAL = "optional"


def _freeze_options(options: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(options))


@attrs.define(frozen=True)
class LoginModuleEntry:
    """One login module configured for an application."""

    module_name: str = field(validator=[validators.instance_of(str), validators.min_len(1)])
    control_flag: ControlFlag = ControlFlag.REQUIRED
    options: Mapping[str, Any] = field(factory=dict, converter=_freeze_options)

    @property
    def is_kerberos(self) -> bool:
        """Whether this entry configures the Kerberos login module."""
        name = self.module_name
        return name == KRB5_LOGIN_MODULE or name.endswith("." + KRB5_LOGIN_MODULE)

    def with_option(self, key: str, value: Any) -> LoginModuleEntry:
        options = dict(self.options)
        options[key] = value
        return attrs.evolve(self, options=options)


# =============================================================================
# CONFIGURATION SOURCES
# =============================================================================


class LoginConfiguration(ABC):
    """Source of login module entries, looked up by application name."""

    @abstractmethod
    def get_entries(self, application: str) -> Optional[List[LoginModuleEntry]]:
        """Entries for application, or None if it is not configured."""
        ...

    def refresh(self) -> None:
        """Reload the configuration, if it has a backing store."""


@attrs.define
class StaticLoginConfiguration(LoginConfiguration):
    """Login configuration held in memory."""

    applications: Dict[str, Sequence[LoginModuleEntry]] = attrs.Factory(dict)

    def get_entries(self, application: str) -> Optional[List[LoginModuleEntry]]:
        entries = self.applications.get(application)
        if entries is None:
            return None
        return list(entries)

    def set_entries(self, application: str, entries: Sequence[LoginModuleEntry]) -> None:
        self.applications[application] = list(entries)


@attrs.define
class ConfigurationDecorator(LoginConfiguration):
    """
    Login configuration that binds the ticket cache for Kerberos logins.

    Every lookup returns the delegate's entries; entries for the Kerberos
    login module get their ticketCache option set to the path currently
    bound in the cache configuration. The bound path is read on each
    lookup, so rebinding applies to later lookups immediately.

    Example:
        decorator = ConfigurationDecorator(delegate=StaticLoginConfiguration(...),
                                           cache_config=config)
        decorator.bind_ticket_cache("/tmp/krb5cc_fake")
        entries = decorator.get_entries("client")
    """

    delegate: LoginConfiguration
    cache_config: CachePathConfig
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    @property
    def bound_ticket_cache(self) -> Optional[str]:
        return self.cache_config.login_ticket_cache

    def bind_ticket_cache(self, path: Optional[str]) -> None:
        """Set the ticket cache path injected into Kerberos login entries."""
        self.cache_config.login_ticket_cache = path
        self._logger.info("login_ticket_cache_bound", path=path)

    def get_entries(self, application: str) -> Optional[List[LoginModuleEntry]]:
        entries = self.delegate.get_entries(application)
        path = self.cache_config.login_ticket_cache
        if entries is None or path is None:
            return entries

        return [
            entry.with_option(TICKET_CACHE_OPTION, path) if entry.is_kerberos else entry
            for entry in entries
        ]

    def refresh(self) -> None:
        self.delegate.refresh()

    @classmethod
    def install_process_wide(cls, cache_config: CachePathConfig) -> ConfigurationDecorator:
        """
        Decorate the process-wide login configuration.

        If it is already decorated, the existing decorator is rebound to
        cache_config and returned.
        """
        with _configuration_lock:
            current = _configuration
            if isinstance(current, cls):
                current.cache_config = cache_config
                return current

            decorator = cls(delegate=current, cache_config=cache_config)
            _set_configuration_locked(decorator)
            return decorator


# =============================================================================
# PROCESS-WIDE CONFIGURATION
# =============================================================================


_configuration_lock = threading.RLock()
_configuration: LoginConfiguration = StaticLoginConfiguration()


def get_configuration() -> LoginConfiguration:
    """Return the process-wide login configuration."""
    return _configuration


def set_configuration(configuration: LoginConfiguration) -> None:
    """Replace the process-wide login configuration."""
    with _configuration_lock:
        _set_configuration_locked(configuration)


def _set_configuration_locked(configuration: LoginConfiguration) -> None:
    global _configuration
    _configuration = configuration
    logger.debug("login_configuration_set", configuration=type(configuration).__name__)
