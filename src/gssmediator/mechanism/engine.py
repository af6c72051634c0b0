"""
Mechanism Engine Contract

The engine performs the actual Kerberos/SPNEGO negotiation. The mediation
layer depends only on the constructors below and on the objects they
return, which are duck-typed:

Names:
    str(name), name.name_type, name.mechanism, name.is_anonymous,
    name.export(), equality and hashing

Credentials:
    name, init_lifetime, accept_lifetime, is_initiator, is_acceptor,
    mechanism, impersonate(name), dispose()

Contexts:
    request_*() setters, *_state getters, init_sec_context(token),
    accept_sec_context(token), wrap, unwrap, get_mic, verify_mic,
    get_wrap_size_limit, export(), inquire_sec_context(inquire_type),
    dispose(), and the informational properties used by MediatedContext
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional, Union

import attrs

from gssmediator.core.types import CredentialUsage, MechanismIdentifier

# Lifetimes are in seconds
INDEFINITE_LIFETIME = 2**31 - 1
DEFAULT_LIFETIME = 0


class InquireType(Enum):
    """Attributes of an established context that may be inquired."""

    KRB5_GET_SESSION_KEY = "KRB5_GET_SESSION_KEY"
    KRB5_GET_SESSION_KEY_EX = "KRB5_GET_SESSION_KEY_EX"
    KRB5_GET_TKT_FLAGS = "KRB5_GET_TKT_FLAGS"
    KRB5_GET_AUTHZ_DATA = "KRB5_GET_AUTHZ_DATA"
    KRB5_GET_AUTHTIME = "KRB5_GET_AUTHTIME"
    KRB5_GET_KRB_CRED = "KRB5_GET_KRB_CRED"


@attrs.define
class MessageProp:
    """
    Per-message properties for wrap, unwrap, get_mic and verify_mic.

    Callers set qop and privacy before protecting a message; the engine
    reports the actual values and supplementary status when unprotecting.
    """

    qop: int = 0
    privacy: bool = True
    duplicate_token: bool = False
    old_token: bool = False
    unsequenced_token: bool = False
    gap_token: bool = False
    minor_status: int = 0
    minor_string: Optional[str] = None


@attrs.define(frozen=True)
class ChannelBinding:
    """Channel binding data (RFC 2743 section 1.1.6)."""

    application_data: bytes = b""
    initiator_address: Optional[bytes] = None
    acceptor_address: Optional[bytes] = None


class MechanismEngine(ABC):
    """Constructors of the underlying negotiation engine."""

    @abstractmethod
    def create_name(
        self,
        value: Union[str, bytes],
        name_type: Optional[MechanismIdentifier],
        mechanism: MechanismIdentifier,
    ) -> Any:
        """Create an engine name from its string or byte encoding."""
        ...

    @abstractmethod
    def create_credential(
        self,
        name: Optional[Any],
        init_lifetime: int,
        accept_lifetime: int,
        usage: CredentialUsage,
        mechanism: MechanismIdentifier,
    ) -> Any:
        """Acquire an engine credential for name (None for the default)."""
        ...

    @abstractmethod
    def create_initiator_context(
        self,
        peer: Any,
        credential: Optional[Any],
        lifetime: int,
        mechanism: MechanismIdentifier,
    ) -> Any:
        """Create an initiator context targeting peer."""
        ...

    @abstractmethod
    def create_acceptor_context(
        self,
        credential: Optional[Any],
        mechanism: MechanismIdentifier,
    ) -> Any:
        """Create an acceptor context."""
        ...

    @abstractmethod
    def import_context(self, exported: bytes, mechanism: MechanismIdentifier) -> Any:
        """Recreate a context from the output of its export()."""
        ...
