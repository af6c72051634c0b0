"""
GSSMediator python-gssapi Engine

Mechanism engine backed by the system GSS-API library (MIT Kerberos or
Heimdal) through the gssapi package.

The real ticket cache path is handed to the library as the "ccache"
credential store entry, so the engine reads the real cache even when the
login subsystem has been pointed at a decoy.

Requirements:
- gssapi Python package (pip install gssapi)
- MIT Kerberos or Heimdal libraries installed
- Valid krb5.conf configuration
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Union

import attrs
import structlog

from gssmediator.core.exceptions import StateError, UnavailableOperation
from gssmediator.core.types import CredentialUsage, MechanismIdentifier
from gssmediator.mechanism.engine import (
    ChannelBinding,
    InquireType,
    MechanismEngine,
    MessageProp,
)

logger = structlog.get_logger()

# Check if GSSAPI is available
try:
    import gssapi
    from gssapi import raw as gssapi_raw
    _gssapi_available = True
    _gssapi_error = None
except ImportError as e:
    gssapi = None  # type: ignore
    gssapi_raw = None  # type: ignore
    _gssapi_available = False
    _gssapi_error = str(e)
    logger.debug("gssapi_not_available", message="Install gssapi package for native Kerberos support")
except OSError as e:
    # GSSAPI installed but underlying library not available (e.g., MIT Kerberos on Windows)
    gssapi = None  # type: ignore
    gssapi_raw = None  # type: ignore
    _gssapi_available = False
    _gssapi_error = str(e)
    logger.warning("gssapi_library_error", message=str(e))


def gssapi_available() -> bool:
    """Check if GSSAPI is available."""
    return _gssapi_available


NT_ANONYMOUS = MechanismIdentifier("1.3.6.1.5.6.3")

# GSS_C_INQ_SSPI_SESSION_KEY
SESSION_KEY_OID = MechanismIdentifier("1.2.840.113554.1.2.2.5.5")

_USAGE = {
    CredentialUsage.INITIATE_AND_ACCEPT: "both",
    CredentialUsage.INITIATE_ONLY: "initiate",
    CredentialUsage.ACCEPT_ONLY: "accept",
}


def _to_oid(identifier: MechanismIdentifier) -> Any:
    return gssapi.OID.from_int_seq(list(identifier.arcs))


def _from_oid(oid: Any) -> Optional[MechanismIdentifier]:
    if oid is None:
        return None
    return MechanismIdentifier(oid.dotted_form)


def _requested_lifetime(seconds: int) -> Optional[int]:
    # 0 requests the library default
    return seconds if seconds > 0 else None


# =============================================================================
# NAMES
# =============================================================================


@attrs.define(eq=False)
class GSSAPIName:
    """gssapi.Name bound to one mechanism."""

    gss_name: Any
    mechanism: MechanismIdentifier

    @property
    def name_type(self) -> Optional[MechanismIdentifier]:
        return _from_oid(self.gss_name.name_type)

    @property
    def is_anonymous(self) -> bool:
        return self.name_type == NT_ANONYMOUS

    def export(self) -> bytes:
        return self.gss_name.canonicalize(_to_oid(self.mechanism)).export()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GSSAPIName):
            return NotImplemented
        return self.gss_name == other.gss_name

    def __hash__(self) -> int:
        return hash(str(self.gss_name))

    def __str__(self) -> str:
        return str(self.gss_name)


# =============================================================================
# CREDENTIALS
# =============================================================================


@attrs.define
class GSSAPICredential:
    """gssapi.Credentials for one mechanism."""

    creds: Any
    mechanism: MechanismIdentifier

    def _inquire(self) -> Any:
        return self.creds.inquire_by_mech(
            _to_oid(self.mechanism), name=True, init_lifetime=True, accept_lifetime=True, usage=True
        )

    @property
    def name(self) -> Optional[GSSAPIName]:
        name = self._inquire().name
        return None if name is None else GSSAPIName(name, self.mechanism)

    @property
    def init_lifetime(self) -> int:
        return self._inquire().init_lifetime or 0

    @property
    def accept_lifetime(self) -> int:
        return self._inquire().accept_lifetime or 0

    @property
    def is_initiator(self) -> bool:
        return self._inquire().usage in ("initiate", "both")

    @property
    def is_acceptor(self) -> bool:
        return self._inquire().usage in ("accept", "both")

    def impersonate(self, name: GSSAPIName) -> GSSAPICredential:
        creds = self.creds.impersonate(
            name=name.gss_name, mechs=[_to_oid(self.mechanism)], usage="initiate"
        )
        return GSSAPICredential(creds, self.mechanism)

    def dispose(self) -> None:
        # The library releases the handle once the last reference goes
        self.creds = None

    def __str__(self) -> str:
        return f"GSSAPICredential({self.mechanism})"


# =============================================================================
# CONTEXTS
# =============================================================================


_FLAGS = {
    "cred_deleg": "delegate_to_peer",
    "mutual_auth": "mutual_authentication",
    "replay_det": "replay_detection",
    "sequence_det": "out_of_sequence_detection",
    "anonymity": "anonymity",
    "conf": "confidentiality",
    "integ": "integrity",
    "deleg_policy": "ok_as_delegate",
}


@attrs.define
class GSSAPIContext:
    """
    Security context over gssapi.SecurityContext.

    The library context is created on the first token exchange, from the
    flags and lifetime requested up to then.
    """

    mechanism: MechanismIdentifier
    initiator: bool
    peer: Optional[GSSAPIName] = None
    credential: Optional[GSSAPICredential] = None
    store: Optional[Dict[str, str]] = None
    gss_ctx: Any = None
    _requested: Dict[str, bool] = attrs.Factory(dict)
    _lifetime: Optional[int] = None
    _channel_bindings: Any = None
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    # Requests

    def _request(self, flag: str, state: bool) -> None:
        if self.gss_ctx is not None:
            raise StateError("Context options can only be requested before the first token")
        self._requested[flag] = state

    def request_lifetime(self, lifetime: int) -> None:
        self._lifetime = _requested_lifetime(lifetime)

    def request_mutual_auth(self, state: bool) -> None:
        self._request("mutual_auth", state)

    def request_replay_det(self, state: bool) -> None:
        self._request("replay_det", state)

    def request_sequence_det(self, state: bool) -> None:
        self._request("sequence_det", state)

    def request_cred_deleg(self, state: bool) -> None:
        self._request("cred_deleg", state)

    def request_anonymity(self, state: bool) -> None:
        self._request("anonymity", state)

    def request_conf(self, state: bool) -> None:
        self._request("conf", state)

    def request_integ(self, state: bool) -> None:
        self._request("integ", state)

    def request_deleg_policy(self, state: bool) -> None:
        self._request("deleg_policy", state)

    def set_channel_binding(self, binding: ChannelBinding) -> None:
        unspecified = gssapi_raw.AddressType.unspecified
        self._channel_bindings = gssapi_raw.ChannelBindings(
            initiator_address_type=unspecified if binding.initiator_address else None,
            initiator_address=binding.initiator_address,
            acceptor_address_type=unspecified if binding.acceptor_address else None,
            acceptor_address=binding.acceptor_address,
            application_data=binding.application_data or None,
        )

    def _requirement_flags(self) -> Any:
        flags = gssapi.RequirementFlag(0)
        for flag, state in self._requested.items():
            if state:
                flags |= getattr(gssapi.RequirementFlag, _FLAGS[flag])
        return flags

    # State

    def _state(self, flag: str) -> bool:
        if self.gss_ctx is None:
            return self._requested.get(flag, False)
        return getattr(gssapi.RequirementFlag, _FLAGS[flag]) in self.gss_ctx.actual_flags

    @property
    def cred_deleg_state(self) -> bool:
        return self._state("cred_deleg")

    @property
    def mutual_auth_state(self) -> bool:
        return self._state("mutual_auth")

    @property
    def replay_det_state(self) -> bool:
        return self._state("replay_det")

    @property
    def sequence_det_state(self) -> bool:
        return self._state("sequence_det")

    @property
    def anonymity_state(self) -> bool:
        return self._state("anonymity")

    @property
    def deleg_policy_state(self) -> bool:
        return self._state("deleg_policy")

    @property
    def conf_state(self) -> bool:
        return self._state("conf")

    @property
    def integ_state(self) -> bool:
        return self._state("integ")

    @property
    def is_transferable(self) -> bool:
        if self.gss_ctx is None:
            return False
        return gssapi.RequirementFlag.transferable in self.gss_ctx.actual_flags

    @property
    def is_prot_ready(self) -> bool:
        if self.gss_ctx is None:
            return False
        return gssapi.RequirementFlag.protection_ready in self.gss_ctx.actual_flags

    @property
    def is_initiator(self) -> bool:
        if self.gss_ctx is None:
            return self.initiator
        return self.gss_ctx.locally_initiated

    @property
    def is_established(self) -> bool:
        return self.gss_ctx is not None and self.gss_ctx.complete

    @property
    def lifetime(self) -> int:
        if self.gss_ctx is None:
            return self._lifetime or 0
        return self.gss_ctx.lifetime or 0

    @property
    def src_name(self) -> Optional[GSSAPIName]:
        if self.gss_ctx is None:
            return self.credential.name if self.credential and self.initiator else None
        return GSSAPIName(self.gss_ctx.initiator_name, self.mechanism)

    @property
    def targ_name(self) -> Optional[GSSAPIName]:
        if self.gss_ctx is None:
            return self.peer
        return GSSAPIName(self.gss_ctx.target_name, self.mechanism)

    @property
    def mech(self) -> MechanismIdentifier:
        if self.gss_ctx is None or self.gss_ctx.mech is None:
            return self.mechanism
        return _from_oid(self.gss_ctx.mech)

    @property
    def deleg_cred(self) -> Optional[GSSAPICredential]:
        if self.gss_ctx is None or self.gss_ctx.delegated_creds is None:
            return None
        return GSSAPICredential(self.gss_ctx.delegated_creds, self.mechanism)

    # Token exchange

    def _creds(self, usage: str) -> Any:
        if self.credential is not None:
            return self.credential.creds
        if self.store is None:
            return None
        return gssapi.Credentials(usage=usage, mechs=[_to_oid(self.mechanism)], store=self.store)

    def init_sec_context(self, token: Optional[bytes]) -> Optional[bytes]:
        if self.gss_ctx is None:
            self.gss_ctx = gssapi.SecurityContext(
                name=self.peer.gss_name,
                creds=self._creds("initiate"),
                flags=self._requirement_flags(),
                lifetime=self._lifetime,
                mech=_to_oid(self.mechanism),
                channel_bindings=self._channel_bindings,
                usage="initiate",
            )
        return self._step(token)

    def accept_sec_context(self, token: bytes) -> Optional[bytes]:
        if self.gss_ctx is None:
            self.gss_ctx = gssapi.SecurityContext(
                creds=self._creds("accept"),
                channel_bindings=self._channel_bindings,
                usage="accept",
            )
        return self._step(token)

    def _step(self, token: Optional[bytes]) -> Optional[bytes]:
        try:
            out_token = self.gss_ctx.step(token)
        except gssapi.exceptions.GSSError as e:
            self._logger.debug(
                "gssapi_step_failed",
                initiator=self.initiator,
                major=getattr(e, "maj_code", None),
                minor=getattr(e, "min_code", None),
            )
            raise

        self._logger.debug(
            "gssapi_step",
            initiator=self.initiator,
            complete=self.gss_ctx.complete,
            has_output=out_token is not None,
        )
        return out_token

    # Per-message protection

    def get_wrap_size_limit(self, qop: int, conf_req: bool, max_token_size: int) -> int:
        return self.gss_ctx.get_wrap_size_limit(max_token_size, encrypted=conf_req)

    def wrap(self, data: bytes, prop: MessageProp) -> bytes:
        wrapped = self.gss_ctx.wrap(data, prop.privacy)
        prop.privacy = wrapped.encrypted
        return wrapped.message

    def unwrap(self, token: bytes, prop: MessageProp) -> bytes:
        unwrapped = self.gss_ctx.unwrap(token)
        prop.privacy = unwrapped.encrypted
        prop.qop = unwrapped.qop
        return unwrapped.message

    def get_mic(self, data: bytes, prop: MessageProp) -> bytes:
        return self.gss_ctx.get_signature(data)

    def verify_mic(self, token: bytes, data: bytes, prop: MessageProp) -> None:
        prop.qop = self.gss_ctx.verify_signature(data, token)

    def export(self) -> bytes:
        return self.gss_ctx.export()

    def inquire_sec_context(self, inquire_type: InquireType) -> Any:
        inquire = getattr(gssapi_raw, "inquire_sec_context_by_oid", None)
        if inquire is None or inquire_type not in (
            InquireType.KRB5_GET_SESSION_KEY,
            InquireType.KRB5_GET_SESSION_KEY_EX,
        ):
            raise UnavailableOperation(f"{inquire_type.name} is not supported by the gssapi engine")
        buffers = inquire(self.gss_ctx, _to_oid(SESSION_KEY_OID))
        return buffers[0] if buffers else None

    def dispose(self) -> None:
        if self.gss_ctx is not None:
            gssapi_raw.delete_sec_context(self.gss_ctx)
            self.gss_ctx = None


# =============================================================================
# ENGINE
# =============================================================================


@attrs.define
class GSSAPIEngine(MechanismEngine):
    """
    Mechanism engine over python-gssapi.

    Example:
        engine = GSSAPIEngine(ccache="/tmp/krb5cc_1000")
        name = engine.create_name("HTTP@web.example.com", NT_HOSTBASED_SERVICE, KRB5_MECHANISM)

    Args:
        ccache: Real ticket cache location, None for the library default
    """

    ccache: Optional[str] = None
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def __attrs_post_init__(self) -> None:
        if not _gssapi_available:
            raise ImportError(f"GSSAPI library not available ({_gssapi_error}). Install with: pip install gssapi")
        self._logger.debug("gssapi_engine_created", ccache=self.ccache or "default")

    @property
    def store(self) -> Optional[Dict[str, str]]:
        """Credential store naming the real ticket cache."""
        if self.ccache is None:
            return None
        return {"ccache": self.ccache}

    def create_name(
        self,
        value: Union[str, bytes],
        name_type: Optional[MechanismIdentifier],
        mechanism: MechanismIdentifier,
    ) -> GSSAPIName:
        gss_name = gssapi.Name(value, name_type=None if name_type is None else _to_oid(name_type))
        return GSSAPIName(gss_name, mechanism)

    def create_credential(
        self,
        name: Optional[GSSAPIName],
        init_lifetime: int,
        accept_lifetime: int,
        usage: CredentialUsage,
        mechanism: MechanismIdentifier,
    ) -> GSSAPICredential:
        if usage is CredentialUsage.INITIATE_ONLY:
            lifetime = init_lifetime
        elif usage is CredentialUsage.ACCEPT_ONLY:
            lifetime = accept_lifetime
        else:
            lifetime = max(init_lifetime, accept_lifetime)

        creds = gssapi.Credentials(
            name=None if name is None else name.gss_name,
            lifetime=_requested_lifetime(lifetime),
            mechs=[_to_oid(mechanism)],
            usage=_USAGE[usage],
            store=self.store,
        )
        return GSSAPICredential(creds, mechanism)

    def create_initiator_context(
        self,
        peer: GSSAPIName,
        credential: Optional[GSSAPICredential],
        lifetime: int,
        mechanism: MechanismIdentifier,
    ) -> GSSAPIContext:
        ctx = GSSAPIContext(
            mechanism=mechanism,
            initiator=True,
            peer=peer,
            credential=credential,
            store=self.store,
        )
        ctx.request_lifetime(lifetime)
        return ctx

    def create_acceptor_context(
        self,
        credential: Optional[GSSAPICredential],
        mechanism: MechanismIdentifier,
    ) -> GSSAPIContext:
        return GSSAPIContext(
            mechanism=mechanism,
            initiator=False,
            credential=credential,
            store=self.store,
        )

    def import_context(self, exported: bytes, mechanism: MechanismIdentifier) -> GSSAPIContext:
        gss_ctx = gssapi.SecurityContext(token=exported)
        return GSSAPIContext(
            mechanism=_from_oid(gss_ctx.mech) or mechanism,
            initiator=gss_ctx.locally_initiated,
            gss_ctx=gss_ctx,
        )
