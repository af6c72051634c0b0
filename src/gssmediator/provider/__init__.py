"""
GSSMediator Provider Installation

Components:
- registry: Ordered mechanism provider registry
- state: Install state machine
- installer: One-time, thread-safe installation
"""

from gssmediator.provider.installer import (
    ProviderInstaller,
    default_installer,
    get_instance,
    install,
    is_installed,
)
from gssmediator.provider.registry import (
    PLATFORM_NATIVE_PROVIDER_NAME,
    PLATFORM_PROVIDER_NAME,
    PROVIDER_NAME,
    ProviderRegistry,
    default_registry,
    platform_provider,
)

__all__ = [
    "ProviderInstaller",
    "ProviderRegistry",
    "default_installer",
    "default_registry",
    "platform_provider",
    "install",
    "is_installed",
    "get_instance",
    "PROVIDER_NAME",
    "PLATFORM_PROVIDER_NAME",
    "PLATFORM_NATIVE_PROVIDER_NAME",
]
