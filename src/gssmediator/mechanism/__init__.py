"""
GSSMediator Mechanism Layer

Components:
- engine: Contract of the engine doing the actual negotiation
- capabilities: Mediated name, credential and context objects
- factory: Per-mechanism creation entry point
- gssapi_engine: Engine over python-gssapi (optional)
"""

from gssmediator.mechanism.capabilities import (
    MediatedContext,
    MediatedCredential,
    MediatedName,
    to_mediated_credential,
    to_mediated_name,
)
from gssmediator.mechanism.engine import (
    DEFAULT_LIFETIME,
    INDEFINITE_LIFETIME,
    ChannelBinding,
    InquireType,
    MechanismEngine,
    MessageProp,
)
from gssmediator.mechanism.factory import MechanismFactory
from gssmediator.mechanism.gssapi_engine import GSSAPIEngine, gssapi_available

__all__ = [
    # Engine contract
    "MechanismEngine",
    "InquireType",
    "MessageProp",
    "ChannelBinding",
    "DEFAULT_LIFETIME",
    "INDEFINITE_LIFETIME",
    # Mediation
    "MechanismFactory",
    "MediatedName",
    "MediatedCredential",
    "MediatedContext",
    "to_mediated_name",
    "to_mediated_credential",
    # python-gssapi
    "GSSAPIEngine",
    "gssapi_available",
]
