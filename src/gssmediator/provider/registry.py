"""
Mechanism Provider Registry

Ordered, process-wide list of mechanism providers. Lookups for a
mechanism resolve to the first provider, in priority order, that
supports it.
"""

from __future__ import annotations

import threading
from typing import Any, List, Optional

import attrs
import structlog

from gssmediator.core.types import KRB5_MECHANISM, SPNEGO_MECHANISM, MechanismIdentifier, ProviderRecord

logger = structlog.get_logger()

# This provider
PROVIDER_NAME = "GSSMediator"

# The platform's own GSS providers
PLATFORM_PROVIDER_NAME = "PlatformGSS"
PLATFORM_NATIVE_PROVIDER_NAME = "PlatformNativeGSS"


@attrs.define
class ProviderRegistry:
    """
    Ordered provider list with at most one record per name.

    Each stored record's priority is its 1-based position.

    Example:
        registry = ProviderRegistry()
        registry.insert_at(record, 1)
        factory = registry.resolve(KRB5_MECHANISM).factory_for(KRB5_MECHANISM)
    """

    _providers: List[ProviderRecord] = attrs.Factory(list)
    _lock: threading.RLock = attrs.Factory(threading.RLock)
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def __attrs_post_init__(self) -> None:
        self._renumber()

    def _renumber(self) -> None:
        self._providers = [
            record if record.priority == i else attrs.evolve(record, priority=i)
            for i, record in enumerate(self._providers, start=1)
        ]

    def insert_at(self, record: ProviderRecord, position: int) -> int:
        """
        Insert record at a 1-based position.

        Positions past the end append. A record with the same name must
        be removed first.

        Returns:
            The position the record was stored at
        """
        with self._lock:
            if any(p.name == record.name for p in self._providers):
                raise ValueError(f"Provider {record.name!r} is already registered")

            index = min(max(position, 1), len(self._providers) + 1) - 1
            self._providers.insert(index, record)
            self._renumber()

        self._logger.info("provider_registered", provider=record.name, position=index + 1)
        return index + 1

    def remove(self, name: str) -> bool:
        """
        Remove the record named name.

        Returns:
            True if a record was removed
        """
        with self._lock:
            remaining = [p for p in self._providers if p.name != name]
            removed = len(remaining) != len(self._providers)
            self._providers = remaining
            self._renumber()

        if removed:
            self._logger.info("provider_removed", provider=name)
        return removed

    def get(self, name: str) -> Optional[ProviderRecord]:
        """Return the record named name, or None."""
        with self._lock:
            for record in self._providers:
                if record.name == name:
                    return record
        return None

    def providers(self) -> List[ProviderRecord]:
        """Snapshot of the records in priority order."""
        with self._lock:
            return list(self._providers)

    def resolve(self, mechanism: MechanismIdentifier) -> Optional[ProviderRecord]:
        """Highest-priority record supporting mechanism, or None."""
        with self._lock:
            for record in self._providers:
                if record.supports(mechanism):
                    return record
        return None


def platform_provider() -> ProviderRecord:
    """Record standing for the platform's built-in GSS provider."""
    return ProviderRecord(
        name=PLATFORM_PROVIDER_NAME,
        mechanisms=frozenset({KRB5_MECHANISM, SPNEGO_MECHANISM}),
        info="Platform GSS-API provider",
    )


_default_registry: Optional[ProviderRegistry] = None
_default_registry_lock = threading.Lock()


def default_registry() -> ProviderRegistry:
    """Return the process-wide registry, created holding the platform provider."""
    global _default_registry
    if _default_registry is None:
        with _default_registry_lock:
            if _default_registry is None:
                _default_registry = ProviderRegistry([platform_provider()])
    return _default_registry
