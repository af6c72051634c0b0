"""
GSSMediator Core Module

Foundational types and abstractions used across the provider.

Components:
- types: Mechanism identifiers, provider records, principals
- once: Compute-once cell with a latched failure
- state_machine: Base state machine with invariant checking
- exceptions: Custom exception types
"""

from gssmediator.core.exceptions import (
    CacheCreationFailure,
    DefectiveCredential,
    DefectiveToken,
    EndOfStream,
    GSSMediatorError,
    InstallationFailure,
    StateError,
    TimestampOverflow,
    UnavailableOperation,
)
from gssmediator.core.once import OnceCell
from gssmediator.core.state_machine import StateMachineBase, Transition
from gssmediator.core.types import (
    CredentialUsage,
    EncryptionType,
    InstallState,
    MechanismIdentifier,
    Principal,
    ProviderRecord,
    Realm,
)

__all__ = [
    # Types
    "MechanismIdentifier",
    "ProviderRecord",
    "CredentialUsage",
    "InstallState",
    "EncryptionType",
    "Principal",
    "Realm",
    # Primitives
    "OnceCell",
    "StateMachineBase",
    "Transition",
    # Exceptions
    "GSSMediatorError",
    "InstallationFailure",
    "DefectiveCredential",
    "DefectiveToken",
    "CacheCreationFailure",
    "TimestampOverflow",
    "UnavailableOperation",
    "EndOfStream",
    "StateError",
]
