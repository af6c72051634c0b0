"""
Mechanism Factory

Entry point through which the provider registry creates names,
credentials and contexts for one mechanism. Every object comes back
mediated, and foreign arguments are converted before they reach the
engine.
"""

from __future__ import annotations

from typing import Any, Optional, Tuple, Union

import attrs
import structlog
from attrs import field, validators

from gssmediator.core.types import (
    KRB5_MECHANISM,
    KRB5_NAME_TYPES,
    SPNEGO_MECHANISM,
    CredentialUsage,
    MechanismIdentifier,
    ProviderRecord,
)
from gssmediator.mechanism.capabilities import (
    MediatedContext,
    MediatedCredential,
    MediatedName,
    to_mediated_credential,
    to_mediated_name,
)
from gssmediator.mechanism.engine import MechanismEngine

# SPNEGO negotiates Kerberos, so it accepts the same name forms
NAME_TYPES = {
    KRB5_MECHANISM: KRB5_NAME_TYPES,
    SPNEGO_MECHANISM: KRB5_NAME_TYPES,
}


def _delegate(obj: Any) -> Any:
    return None if obj is None else obj.delegate


@attrs.define
class MechanismFactory:
    """
    Creates mediated capability objects for one mechanism.

    Example:
        factory = MechanismFactory(KRB5_MECHANISM, engine, provider)
        peer = factory.get_name_element("HTTP@server.example.com", NT_HOSTBASED_SERVICE)
        ctx = factory.get_mechanism_context(peer, None, DEFAULT_LIFETIME)
    """

    mechanism: MechanismIdentifier = field(validator=validators.instance_of(MechanismIdentifier))
    engine: MechanismEngine
    provider: ProviderRecord
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    @property
    def name_types(self) -> Tuple[MechanismIdentifier, ...]:
        """Name types this mechanism can import."""
        return NAME_TYPES.get(self.mechanism, KRB5_NAME_TYPES)

    def get_name_element(
        self,
        value: Union[str, bytes],
        name_type: Optional[MechanismIdentifier],
    ) -> MediatedName:
        """Create a name from its string or byte encoding."""
        delegate = self.engine.create_name(value, name_type, self.mechanism)
        return MediatedName(delegate=delegate, provider=self.provider)

    def get_credential_element(
        self,
        name: Any,
        init_lifetime: int,
        accept_lifetime: int,
        usage: CredentialUsage,
    ) -> MediatedCredential:
        """
        Acquire a credential.

        Args:
            name: Desired principal (any provider's name), None for the default
            init_lifetime: Requested initiator lifetime in seconds
            accept_lifetime: Requested acceptor lifetime in seconds
            usage: Whether the credential initiates, accepts or both
        """
        name = to_mediated_name(name, self)
        delegate = self.engine.create_credential(
            _delegate(name), init_lifetime, accept_lifetime, usage, self.mechanism
        )
        self._logger.debug(
            "credential_created",
            mechanism=str(self.mechanism),
            name=None if name is None else str(name),
            usage=usage.name,
        )
        return MediatedCredential(delegate=delegate, provider=self.provider)

    def get_mechanism_context(self, *args: Any) -> MediatedContext:
        """
        Create a security context.

        Forms:
            (peer, credential, lifetime): initiator context for peer
            (credential,): acceptor context, credential may be None
            (exported,): context imported from export() output
        """
        if len(args) == 3:
            return self.initiator_context(*args)
        if len(args) == 1:
            if isinstance(args[0], (bytes, bytearray, memoryview)):
                return self.import_context(bytes(args[0]))
            return self.acceptor_context(args[0])
        raise TypeError(f"get_mechanism_context() takes 1 or 3 arguments ({len(args)} given)")

    def initiator_context(self, peer: Any, credential: Any, lifetime: int) -> MediatedContext:
        peer = to_mediated_name(peer, self)
        credential = to_mediated_credential(credential, self)
        delegate = self.engine.create_initiator_context(
            _delegate(peer), _delegate(credential), lifetime, self.mechanism
        )
        self._logger.debug(
            "initiator_context_created", mechanism=str(self.mechanism), peer=str(peer)
        )
        return MediatedContext(
            delegate=delegate,
            provider=self.provider,
            mechanism=self.mechanism,
            credential=credential,
            peer=peer,
        )

    def acceptor_context(self, credential: Any) -> MediatedContext:
        credential = to_mediated_credential(credential, self)
        delegate = self.engine.create_acceptor_context(_delegate(credential), self.mechanism)
        self._logger.debug("acceptor_context_created", mechanism=str(self.mechanism))
        return MediatedContext(
            delegate=delegate, provider=self.provider, mechanism=self.mechanism, credential=credential
        )

    def import_context(self, exported: bytes) -> MediatedContext:
        delegate = self.engine.import_context(exported, self.mechanism)
        self._logger.debug("context_imported", mechanism=str(self.mechanism))
        return MediatedContext(
            delegate=delegate, provider=self.provider, mechanism=self.mechanism
        )
