"""
GSSMediator - Pluggable GSS-API Mechanism Provider

Installs itself in front of the platform's Kerberos V5 and SPNEGO
provider and hands out names, credentials and security contexts that
report this provider as their origin while a mechanism engine does the
actual negotiation.

For login modules that insist on reading a ticket cache file, a decoy
cache holding one key-less krbtgt credential is written where the real
cache cannot be read as a file, and its location is injected into the
Kerberos login module's options.

Example Usage:
    from gssmediator import get_instance, NT_HOSTBASED_SERVICE

    factory = get_instance()
    peer = factory.get_name_element("HTTP@web.example.com", NT_HOSTBASED_SERVICE)
    ctx = factory.get_mechanism_context(peer, None, 0)
    ctx.request_mutual_auth(True)
    token = ctx.init_sec_context(None)

Environment:
    KRB5CCNAME                    real ticket cache location
    GSSMEDIATOR_FAKE_KRB5CC       write the decoy at KRB5CCNAME itself
    GSSMEDIATOR_FAKE_KRB5CC_MODE  octal file mode for the decoy
"""

from gssmediator.config import CachePathConfig
from gssmediator.core.exceptions import (
    CacheCreationFailure,
    DefectiveCredential,
    DefectiveToken,
    EndOfStream,
    GSSMediatorError,
    InstallationFailure,
    TimestampOverflow,
    UnavailableOperation,
)
from gssmediator.core.types import (
    KRB5_MECHANISM,
    NT_EXPORT_NAME,
    NT_HOSTBASED_SERVICE,
    NT_KRB5_PRINCIPAL,
    NT_USER_NAME,
    SPNEGO_MECHANISM,
    CredentialUsage,
    InstallState,
    MechanismIdentifier,
    ProviderRecord,
)
from gssmediator.provider.installer import (
    PROVIDER_VERSION,
    ProviderInstaller,
    get_instance,
    install,
    is_installed,
)
from gssmediator.provider.registry import PROVIDER_NAME, ProviderRegistry

__version__ = PROVIDER_VERSION

__all__ = [
    # Main API
    "install",
    "is_installed",
    "get_instance",
    "ProviderInstaller",
    "ProviderRegistry",
    "CachePathConfig",
    "PROVIDER_NAME",
    # Types
    "MechanismIdentifier",
    "ProviderRecord",
    "CredentialUsage",
    "InstallState",
    "KRB5_MECHANISM",
    "SPNEGO_MECHANISM",
    "NT_USER_NAME",
    "NT_HOSTBASED_SERVICE",
    "NT_EXPORT_NAME",
    "NT_KRB5_PRINCIPAL",
    # Exceptions
    "GSSMediatorError",
    "InstallationFailure",
    "DefectiveCredential",
    "DefectiveToken",
    "CacheCreationFailure",
    "TimestampOverflow",
    "UnavailableOperation",
    "EndOfStream",
    # Metadata
    "__version__",
]
