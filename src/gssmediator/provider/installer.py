"""
GSSMediator Provider Installer

Puts this provider in front of the platform's GSS provider, once per
installer, and keeps the result.

Installation, under a single lock:
1. Run ticket cache emulation to find the cache the login module reads.
2. Build the mechanism factories over an engine bound to the real cache.
3. If a provider with this name is registered and the platform provider
   is not, someone installed it already: leave the registry alone.
   Otherwise remove the platform providers and any stale copy of this
   one and insert this provider at priority 1.
4. Bind the login cache path into the login configuration.

A failure at any step is latched: every later call re-raises the same
InstallationFailure without repeating any side effect.

Example:
    from gssmediator import get_instance

    factory = get_instance()
    ctx = factory.get_mechanism_context(peer, None, DEFAULT_LIFETIME)
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional, Tuple

import attrs
import structlog
from returns.result import Failure

from gssmediator.ccache.emulator import TicketCacheEmulator
from gssmediator.config import CachePathConfig
from gssmediator.core.exceptions import InstallationFailure, StateError, UnavailableOperation
from gssmediator.core.once import OnceCell
from gssmediator.core.types import (
    KRB5_MECHANISM,
    SPNEGO_MECHANISM,
    InstallState,
    MechanismIdentifier,
    ProviderRecord,
)
from gssmediator.login.configuration import ConfigurationDecorator
from gssmediator.mechanism.engine import MechanismEngine
from gssmediator.mechanism.factory import MechanismFactory
from gssmediator.mechanism.gssapi_engine import GSSAPIEngine
from gssmediator.provider.registry import (
    PLATFORM_NATIVE_PROVIDER_NAME,
    PLATFORM_PROVIDER_NAME,
    PROVIDER_NAME,
    ProviderRegistry,
    default_registry,
)
from gssmediator.provider.state import (
    BeginInstall,
    FoundExternalInstall,
    InstalledBySelf,
    InstallFailed,
    InstallStateMachine,
)

logger = structlog.get_logger()

PROVIDER_VERSION = "0.1.0"

PROVIDER_INFO = "GSS-API provider mediating Kerberos V5 and SPNEGO"

DEFAULT_MECHANISMS: Tuple[MechanismIdentifier, ...] = (KRB5_MECHANISM, SPNEGO_MECHANISM)

# Called with the real ticket cache location (None for the platform default)
EngineFactory = Callable[[Optional[str]], MechanismEngine]


def _gssapi_engine(ccache: Optional[str]) -> MechanismEngine:
    return GSSAPIEngine(ccache=ccache)


@attrs.define
class ProviderInstaller:
    """
    Installs this provider into a registry exactly once.

    Example:
        installer = ProviderInstaller(
            registry=ProviderRegistry([platform_provider()]),
            cache_config=CachePathConfig(ticket_cache="/tmp/cc1"),
            engine_factory=lambda ccache: MyEngine(ccache),
        )
        installer.install()
        factory = installer.get_instance(KRB5_MECHANISM)

    Args:
        registry: Registry to install into
        cache_config: Cache locations, updated by emulation
        engine_factory: Builds the engine from the real cache location
        decorator: Login configuration decorator; None decorates the
            process-wide login configuration on install
        emulator: Ticket cache emulator; defaults to one over cache_config
    """

    registry: ProviderRegistry = attrs.Factory(default_registry)
    cache_config: CachePathConfig = attrs.Factory(CachePathConfig.from_env)
    engine_factory: EngineFactory = _gssapi_engine
    decorator: Optional[ConfigurationDecorator] = None
    emulator: TicketCacheEmulator = attrs.Factory(
        lambda self: TicketCacheEmulator(self.cache_config), takes_self=True
    )
    provider_name: str = PROVIDER_NAME
    mechanisms: Tuple[MechanismIdentifier, ...] = DEFAULT_MECHANISMS
    _machine: InstallStateMachine = attrs.Factory(InstallStateMachine)
    _cell: OnceCell[ProviderRecord] = attrs.Factory(OnceCell)
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    @property
    def state(self) -> InstallState:
        return self._machine.state

    @property
    def state_machine(self) -> InstallStateMachine:
        return self._machine

    def install(self) -> None:
        """
        Install this provider if it is not installed yet.

        Safe to call from many threads; exactly one performs the
        installation and the others wait for it.

        Raises:
            InstallationFailure: The latched failure of the first attempt
        """
        self._install()

    def _install(self) -> ProviderRecord:
        outcome = self._cell.get_or_compute(self._perform_install)
        if isinstance(outcome, Failure):
            raise outcome.failure()
        return outcome.unwrap()

    def is_installed(self) -> bool:
        """
        Whether this provider is installed, by this installer or by
        someone else, as far as the registry shows.
        """
        return self.state.is_installed or self._is_installed_externally()

    def get_instance(self, mechanism: MechanismIdentifier = KRB5_MECHANISM) -> MechanismFactory:
        """
        Install if needed and return the factory for mechanism.

        Raises:
            InstallationFailure: If installation failed
            UnavailableOperation: If this provider does not offer mechanism
        """
        record = self._install()
        factory = record.factory_for(mechanism)
        if factory is None:
            raise UnavailableOperation(f"Mechanism {mechanism} is not provided by {record.name}")
        return factory

    def _is_installed_externally(self) -> bool:
        return (
            self.registry.get(self.provider_name) is not None
            and self.registry.get(PLATFORM_PROVIDER_NAME) is None
        )

    def _advance(self, event: Any) -> None:
        result = self._machine.process_event(event)
        if isinstance(result, Failure):
            raise StateError(result.failure())

    def _perform_install(self) -> ProviderRecord:
        self._logger.info(
            "install_started",
            provider=self.provider_name,
            ticket_cache=self.cache_config.ticket_cache,
            fake_cache=self.cache_config.fake_cache,
        )

        try:
            # Refused if an interrupted attempt left the machine INSTALLING
            self._advance(BeginInstall(provider_name=self.provider_name))
            login_cache = self.emulator.emulate()
            record = self._build_provider()

            if self._is_installed_externally():
                self._bind_configuration(login_cache)
                self._advance(FoundExternalInstall(login_ticket_cache=login_cache))
                self._logger.info(
                    "provider_install_skipped",
                    provider=self.provider_name,
                    reason="already installed externally",
                    login_ticket_cache=login_cache,
                )
                return record

            for name in (PLATFORM_PROVIDER_NAME, PLATFORM_NATIVE_PROVIDER_NAME, self.provider_name):
                self.registry.remove(name)
            position = self.registry.insert_at(record, 1)
            self._bind_configuration(login_cache)
            self._advance(InstalledBySelf(login_ticket_cache=login_cache))

            self._logger.info(
                "provider_installed",
                provider=self.provider_name,
                position=position,
                mechanisms=[str(m) for m in record.mechanisms],
                login_ticket_cache=login_cache,
            )
            return record

        except Exception as e:
            self._logger.error(
                "provider_install_failed",
                provider=self.provider_name,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            self._advance(InstallFailed(cause=e))
            raise InstallationFailure(
                f"Failed to install {self.provider_name} provider: {e}", cause=e
            ) from e

    def _build_provider(self) -> ProviderRecord:
        # Emulation may have cleared the path, leaving the platform default
        engine = self.engine_factory(self.cache_config.ticket_cache)
        record = ProviderRecord(
            name=self.provider_name,
            mechanisms=frozenset(self.mechanisms),
            info=PROVIDER_INFO,
            version=PROVIDER_VERSION,
        )
        for mechanism in self.mechanisms:
            record.factories[mechanism] = MechanismFactory(mechanism, engine, record)
        return record

    def _bind_configuration(self, login_cache: Optional[str]) -> None:
        if self.decorator is None:
            self.decorator = ConfigurationDecorator.install_process_wide(self.cache_config)
        if login_cache is not None:
            self.decorator.bind_ticket_cache(login_cache)


# =============================================================================
# PROCESS-WIDE INSTALLER
# =============================================================================


_default_installer: Optional[ProviderInstaller] = None
_default_installer_lock = threading.Lock()


def default_installer() -> ProviderInstaller:
    """Installer over the process-wide registry and environment settings."""
    global _default_installer
    if _default_installer is None:
        with _default_installer_lock:
            if _default_installer is None:
                _default_installer = ProviderInstaller()
    return _default_installer


def install() -> None:
    """Install this provider process-wide. See ProviderInstaller.install()."""
    default_installer().install()


def is_installed() -> bool:
    """Whether this provider is installed process-wide."""
    return default_installer().is_installed()


def get_instance(mechanism: MechanismIdentifier = KRB5_MECHANISM) -> MechanismFactory:
    """Install process-wide if needed and return the factory for mechanism."""
    return default_installer().get_instance(mechanism)
