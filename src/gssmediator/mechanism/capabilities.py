"""
Mediated Capability Objects

Name, credential and context wrappers that report this provider as their
origin while delegating every operation to the mechanism engine's own
objects. No negotiation logic lives here and token bytes pass through
unchanged.

An owning wrapper exclusively owns one engine object. Disposal is forwarded
to it exactly once, either by an explicit dispose() or when the wrapper is
garbage collected. Names reported by credentials and contexts belong to
those objects and are wrapped without ownership.

Objects created by other providers ("foreign" objects) are converted into
mediated ones from their observable properties before being handed to the
engine; the conversion never touches the foreign object's internals.
"""

from __future__ import annotations

import weakref
from typing import TYPE_CHECKING, Any, Optional, Union

import attrs
import structlog

from gssmediator.core.exceptions import DefectiveCredential, UnavailableOperation
from gssmediator.core.types import CredentialUsage, MechanismIdentifier, ProviderRecord
from gssmediator.mechanism.engine import ChannelBinding, InquireType, MessageProp
from gssmediator.tokens import UNKNOWN_LENGTH, TokenSource, read_token

if TYPE_CHECKING:
    from gssmediator.mechanism.factory import MechanismFactory

logger = structlog.get_logger()


def _dispose_delegate(delegate: Any) -> None:
    dispose = getattr(delegate, "dispose", None)
    if dispose is not None:
        dispose()


@attrs.define(eq=False)
class _Mediated:
    """Common state of mediated capability objects."""

    delegate: Any
    provider: ProviderRecord
    owned: bool = attrs.field(default=True, kw_only=True)
    _finalizer: Optional[weakref.finalize] = attrs.field(default=None, init=False, repr=False)

    def __attrs_post_init__(self) -> None:
        if self.owned:
            # The finalizer must not reference self
            self._finalizer = weakref.finalize(self, _dispose_delegate, self.delegate)
            self._finalizer.atexit = False

    @property
    def is_disposed(self) -> bool:
        return self._finalizer is not None and not self._finalizer.alive

    def dispose(self) -> None:
        """Release the engine object if owned. Later calls do nothing."""
        if self._finalizer is not None:
            self._finalizer()


# =============================================================================
# NAMES
# =============================================================================


@attrs.define(eq=False)
class MediatedName(_Mediated):
    """
    Principal or service name.

    Equality and hashing follow the engine name, so a mediated name
    compares equal to the engine name it wraps.
    """

    @property
    def name_type(self) -> Optional[MechanismIdentifier]:
        return self.delegate.name_type

    @property
    def mechanism(self) -> MechanismIdentifier:
        return self.delegate.mechanism

    @property
    def is_anonymous(self) -> bool:
        return self.delegate.is_anonymous

    def export(self) -> bytes:
        return self.delegate.export()

    def __eq__(self, other: object) -> bool:
        if isinstance(other, MediatedName):
            other = other.delegate
        return self.delegate == other

    def __ne__(self, other: object) -> bool:
        return not self == other

    def __hash__(self) -> int:
        return hash(self.delegate)

    def __str__(self) -> str:
        return str(self.delegate)


# =============================================================================
# CREDENTIALS
# =============================================================================


@attrs.define(eq=False)
class MediatedCredential(_Mediated):
    """Credential element for one mechanism."""

    @property
    def name(self) -> MediatedName:
        return _wrap_name(self.delegate.name, self.provider)

    @property
    def init_lifetime(self) -> int:
        return self.delegate.init_lifetime

    @property
    def accept_lifetime(self) -> int:
        return self.delegate.accept_lifetime

    @property
    def is_initiator(self) -> bool:
        return self.delegate.is_initiator

    @property
    def is_acceptor(self) -> bool:
        return self.delegate.is_acceptor

    @property
    def mechanism(self) -> MechanismIdentifier:
        return self.delegate.mechanism

    def impersonate(self, name: Any) -> MediatedCredential:
        """Credential acting on behalf of name (S4U2self)."""
        if isinstance(name, MediatedName):
            name = name.delegate
        return MediatedCredential(delegate=self.delegate.impersonate(name), provider=self.provider)

    def __str__(self) -> str:
        return str(self.delegate)


# =============================================================================
# CONTEXTS
# =============================================================================


def _state(attribute: str, doc: str) -> property:
    return property(lambda self: getattr(self.delegate, attribute), doc=doc)


@attrs.define(eq=False)
class MediatedContext(_Mediated):
    """
    Security context for one mechanism.

    Example:
        ctx = factory.get_mechanism_context(peer, cred, DEFAULT_LIFETIME)
        ctx.request_mutual_auth(True)
        token = ctx.init_sec_context(None)
        while not ctx.is_established:
            token = ctx.init_sec_context(exchange(token))
    """

    mechanism: MechanismIdentifier = attrs.field(default=None)
    # Kept alive while the engine context uses their engine objects
    credential: Optional[MediatedCredential] = attrs.field(default=None, repr=False)
    peer: Optional[MediatedName] = attrs.field(default=None, repr=False)
    _deleg_cred: Optional[MediatedCredential] = attrs.field(default=None, init=False, repr=False)

    def __attrs_post_init__(self) -> None:
        super().__attrs_post_init__()
        if self.mechanism is None:
            self.mechanism = self.delegate.mech

    # Requests made before the first token

    def request_lifetime(self, lifetime: int) -> None:
        self.delegate.request_lifetime(lifetime)

    def request_mutual_auth(self, state: bool) -> None:
        self.delegate.request_mutual_auth(state)

    def request_replay_det(self, state: bool) -> None:
        self.delegate.request_replay_det(state)

    def request_sequence_det(self, state: bool) -> None:
        self.delegate.request_sequence_det(state)

    def request_cred_deleg(self, state: bool) -> None:
        self.delegate.request_cred_deleg(state)

    def request_anonymity(self, state: bool) -> None:
        self.delegate.request_anonymity(state)

    def request_conf(self, state: bool) -> None:
        self.delegate.request_conf(state)

    def request_integ(self, state: bool) -> None:
        self.delegate.request_integ(state)

    def request_deleg_policy(self, state: bool) -> None:
        self.delegate.request_deleg_policy(state)

    def set_channel_binding(self, binding: ChannelBinding) -> None:
        self.delegate.set_channel_binding(binding)

    # Context state

    cred_deleg_state = _state("cred_deleg_state", "Whether credentials are delegated.")
    mutual_auth_state = _state("mutual_auth_state", "Whether mutual authentication is on.")
    replay_det_state = _state("replay_det_state", "Whether replay detection is on.")
    sequence_det_state = _state("sequence_det_state", "Whether sequence checking is on.")
    anonymity_state = _state("anonymity_state", "Whether the initiator is anonymous.")
    deleg_policy_state = _state("deleg_policy_state", "Whether KDC delegation policy applies.")
    conf_state = _state("conf_state", "Whether confidentiality is available.")
    integ_state = _state("integ_state", "Whether integrity is available.")
    is_transferable = _state("is_transferable", "Whether the context can be exported.")
    is_prot_ready = _state("is_prot_ready", "Whether per-message protection is usable.")
    is_initiator = _state("is_initiator", "Whether this side initiated the context.")
    is_established = _state("is_established", "Whether establishment is complete.")
    lifetime = _state("lifetime", "Remaining context lifetime in seconds.")

    @property
    def src_name(self) -> Optional[MediatedName]:
        return _wrap_name(self.delegate.src_name, self.provider)

    @property
    def targ_name(self) -> Optional[MediatedName]:
        return _wrap_name(self.delegate.targ_name, self.provider)

    @property
    def mech(self) -> MechanismIdentifier:
        return self.delegate.mech

    @property
    def deleg_cred(self) -> Optional[MediatedCredential]:
        """Credential delegated by the initiator, owned by the caller."""
        cred = self.delegate.deleg_cred
        if cred is None:
            return None
        # One wrapper per engine credential, so it is disposed only once
        if self._deleg_cred is None or self._deleg_cred.delegate is not cred:
            self._deleg_cred = MediatedCredential(delegate=cred, provider=self.provider)
        return self._deleg_cred

    # Token exchange

    def init_sec_context(
        self,
        source: Optional[TokenSource],
        mech_token_size: int = UNKNOWN_LENGTH,
    ) -> Optional[bytes]:
        """
        Produce the next initiator token.

        Args:
            source: Token received from the acceptor, None on the first call
            mech_token_size: Inner length if the header was already consumed

        Returns:
            Token to send, or None if there is nothing to send
        """
        token = None if source is None else read_token(source, mech_token_size, self.mechanism)
        return self.delegate.init_sec_context(token)

    def accept_sec_context(
        self,
        source: TokenSource,
        mech_token_size: int = UNKNOWN_LENGTH,
    ) -> Optional[bytes]:
        """
        Consume an initiator token and produce the reply, if any.

        Args:
            source: Token received from the initiator
            mech_token_size: Inner length if the header was already consumed
        """
        token = read_token(source, mech_token_size, self.mechanism)
        return self.delegate.accept_sec_context(token)

    # Per-message protection

    def get_wrap_size_limit(self, qop: int, conf_req: bool, max_token_size: int) -> int:
        return self.delegate.get_wrap_size_limit(qop, conf_req, max_token_size)

    def wrap(self, data: bytes, prop: MessageProp) -> bytes:
        return self.delegate.wrap(data, prop)

    def unwrap(self, token: bytes, prop: MessageProp) -> bytes:
        return self.delegate.unwrap(token, prop)

    def get_mic(self, data: bytes, prop: MessageProp) -> bytes:
        return self.delegate.get_mic(data, prop)

    def verify_mic(self, token: bytes, data: bytes, prop: MessageProp) -> None:
        self.delegate.verify_mic(token, data, prop)

    def export(self) -> bytes:
        return self.delegate.export()

    def inquire_sec_context(self, inquire_type: Union[InquireType, str]) -> Any:
        """
        Query an attribute of the established context.

        Raises:
            UnavailableOperation: If inquire_type is not an InquireType
        """
        if not isinstance(inquire_type, InquireType):
            raise UnavailableOperation("Not implemented")
        return self.delegate.inquire_sec_context(inquire_type)

    def __str__(self) -> str:
        return str(self.delegate)


# =============================================================================
# FOREIGN OBJECT CONVERSION
# =============================================================================


def _wrap_name(name: Any, provider: ProviderRecord) -> Optional[MediatedName]:
    """Borrowed view of a name owned by an engine credential or context."""
    if name is None or isinstance(name, MediatedName):
        return name
    return MediatedName(delegate=name, provider=provider, owned=False)


def usage_of(credential: Any) -> CredentialUsage:
    """
    Usage of a credential, derived from its initiator and acceptor flags.

    Raises:
        DefectiveCredential: If the credential is neither
    """
    initiator = credential.is_initiator
    acceptor = credential.is_acceptor
    if initiator and acceptor:
        return CredentialUsage.INITIATE_AND_ACCEPT
    if acceptor:
        return CredentialUsage.ACCEPT_ONLY
    if initiator:
        return CredentialUsage.INITIATE_ONLY
    raise DefectiveCredential()


def to_mediated_name(name: Any, factory: MechanismFactory) -> Optional[MediatedName]:
    """
    Mediated equivalent of name, rebuilt from its string form and type.

    Mediated names and None are returned as they are.
    """
    if name is None or isinstance(name, MediatedName):
        return name
    logger.debug("converting_foreign_name", name_type=str(name.name_type))
    return factory.get_name_element(str(name), name.name_type)


def to_mediated_credential(credential: Any, factory: MechanismFactory) -> Optional[MediatedCredential]:
    """
    Mediated equivalent of credential, rebuilt from its name, lifetimes
    and usage.

    Mediated credentials and None are returned as they are.

    Raises:
        DefectiveCredential: If the credential is neither initiator nor acceptor
    """
    if credential is None or isinstance(credential, MediatedCredential):
        return credential
    usage = usage_of(credential)
    logger.debug("converting_foreign_credential", usage=usage.name)
    return factory.get_credential_element(
        to_mediated_name(credential.name, factory),
        credential.init_lifetime,
        credential.accept_lifetime,
        usage,
    )
