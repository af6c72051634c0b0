"""
Pytest configuration and shared fixtures for GSSMediator tests.

The mechanism engine is replaced by an in-memory fake that records what
the mediation layer hands it and counts disposals.
"""

import pytest
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import attrs

from gssmediator.config import CachePathConfig
from gssmediator.core.types import (
    KRB5_MECHANISM,
    SPNEGO_MECHANISM,
    MechanismIdentifier,
    Principal,
    ProviderRecord,
    Realm,
)
from gssmediator.login.configuration import (
    ConfigurationDecorator,
    LoginModuleEntry,
    StaticLoginConfiguration,
    get_configuration,
    set_configuration,
)
from gssmediator.mechanism.engine import InquireType, MechanismEngine, MessageProp
from gssmediator.mechanism.factory import MechanismFactory
from gssmediator.provider.registry import PROVIDER_NAME, ProviderRegistry, platform_provider


# =============================================================================
# FAKE MECHANISM ENGINE
# =============================================================================


@attrs.define(eq=False)
class FakeName:
    """Engine name compared by value."""

    value: str
    name_type: Optional[MechanismIdentifier]
    mechanism: MechanismIdentifier
    is_anonymous: bool = False
    dispose_count: int = 0

    def export(self) -> bytes:
        return b"\x04\x01" + self.value.encode("utf-8")

    def dispose(self) -> None:
        self.dispose_count += 1

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FakeName):
            return NotImplemented
        return (self.value, self.mechanism) == (other.value, other.mechanism)

    def __hash__(self) -> int:
        return hash((self.value, self.mechanism))

    def __str__(self) -> str:
        return self.value


@attrs.define
class FakeCredential:
    """Engine credential with explicit usage flags."""

    name: Optional[FakeName]
    init_lifetime: int
    accept_lifetime: int
    is_initiator: bool
    is_acceptor: bool
    mechanism: MechanismIdentifier
    dispose_count: int = 0

    def impersonate(self, name: FakeName) -> "FakeCredential":
        return FakeCredential(
            name=name,
            init_lifetime=self.init_lifetime,
            accept_lifetime=0,
            is_initiator=True,
            is_acceptor=False,
            mechanism=self.mechanism,
        )

    def dispose(self) -> None:
        self.dispose_count += 1


@attrs.define
class FakeContext:
    """
    Engine context running a two-token exchange.

    The initiator sends AP-REQ, the acceptor answers AP-REP, and both
    sides are then established.
    """

    mechanism: MechanismIdentifier
    initiator: bool
    peer: Optional[FakeName] = None
    credential: Optional[FakeCredential] = None
    lifetime: int = 0
    exported_from: Optional[bytes] = None
    tokens: List[Optional[bytes]] = attrs.Factory(list)
    channel_binding: Any = None
    is_established: bool = False
    cred_deleg_state: bool = False
    mutual_auth_state: bool = False
    replay_det_state: bool = False
    sequence_det_state: bool = False
    anonymity_state: bool = False
    deleg_policy_state: bool = False
    conf_state: bool = False
    integ_state: bool = False
    is_transferable: bool = True
    is_prot_ready: bool = False
    deleg_cred: Optional[FakeCredential] = None
    dispose_count: int = 0

    @property
    def is_initiator(self) -> bool:
        return self.initiator

    @property
    def src_name(self) -> Optional[FakeName]:
        return self.credential.name if self.credential else None

    @property
    def targ_name(self) -> Optional[FakeName]:
        return self.peer

    @property
    def mech(self) -> MechanismIdentifier:
        return self.mechanism

    def request_lifetime(self, lifetime: int) -> None:
        self.lifetime = lifetime

    def request_mutual_auth(self, state: bool) -> None:
        self.mutual_auth_state = state

    def request_replay_det(self, state: bool) -> None:
        self.replay_det_state = state

    def request_sequence_det(self, state: bool) -> None:
        self.sequence_det_state = state

    def request_cred_deleg(self, state: bool) -> None:
        self.cred_deleg_state = state

    def request_anonymity(self, state: bool) -> None:
        self.anonymity_state = state

    def request_conf(self, state: bool) -> None:
        self.conf_state = state

    def request_integ(self, state: bool) -> None:
        self.integ_state = state

    def request_deleg_policy(self, state: bool) -> None:
        self.deleg_policy_state = state

    def set_channel_binding(self, binding: Any) -> None:
        self.channel_binding = binding

    def init_sec_context(self, token: Optional[bytes]) -> Optional[bytes]:
        self.tokens.append(token)
        if token is None:
            return b"AP-REQ"
        self.is_established = True
        self.is_prot_ready = True
        return None

    def accept_sec_context(self, token: bytes) -> Optional[bytes]:
        self.tokens.append(token)
        self.is_established = True
        self.is_prot_ready = True
        return b"AP-REP"

    def get_wrap_size_limit(self, qop: int, conf_req: bool, max_token_size: int) -> int:
        return max_token_size - (32 if conf_req else 16)

    def wrap(self, data: bytes, prop: MessageProp) -> bytes:
        return b"W" + data

    def unwrap(self, token: bytes, prop: MessageProp) -> bytes:
        prop.qop = 0
        return token[1:]

    def get_mic(self, data: bytes, prop: MessageProp) -> bytes:
        return b"MIC" + bytes([len(data) % 256])

    def verify_mic(self, token: bytes, data: bytes, prop: MessageProp) -> None:
        if token != self.get_mic(data, prop):
            raise ValueError("bad MIC")

    def export(self) -> bytes:
        return b"CTX" + (self.peer.value.encode("utf-8") if self.peer else b"")

    def inquire_sec_context(self, inquire_type: InquireType) -> Any:
        return f"value-of-{inquire_type.name}"

    def dispose(self) -> None:
        self.dispose_count += 1


@attrs.define
class FakeEngine(MechanismEngine):
    """Engine recording every object it creates."""

    ccache: Optional[str] = None
    names: List[FakeName] = attrs.Factory(list)
    credentials: List[FakeCredential] = attrs.Factory(list)
    contexts: List[FakeContext] = attrs.Factory(list)
    credential_calls: List[Dict[str, Any]] = attrs.Factory(list)

    def create_name(self, value, name_type, mechanism) -> FakeName:
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        name = FakeName(value=value, name_type=name_type, mechanism=mechanism)
        self.names.append(name)
        return name

    def create_credential(self, name, init_lifetime, accept_lifetime, usage, mechanism) -> FakeCredential:
        self.credential_calls.append(
            {
                "name": name,
                "init_lifetime": init_lifetime,
                "accept_lifetime": accept_lifetime,
                "usage": usage,
            }
        )
        cred = FakeCredential(
            name=name,
            init_lifetime=init_lifetime if usage.can_initiate else 0,
            accept_lifetime=accept_lifetime if usage.can_accept else 0,
            is_initiator=usage.can_initiate,
            is_acceptor=usage.can_accept,
            mechanism=mechanism,
        )
        self.credentials.append(cred)
        return cred

    def create_initiator_context(self, peer, credential, lifetime, mechanism) -> FakeContext:
        ctx = FakeContext(
            mechanism=mechanism,
            initiator=True,
            peer=peer,
            credential=credential,
            lifetime=lifetime,
        )
        self.contexts.append(ctx)
        return ctx

    def create_acceptor_context(self, credential, mechanism) -> FakeContext:
        ctx = FakeContext(mechanism=mechanism, initiator=False, credential=credential)
        self.contexts.append(ctx)
        return ctx

    def import_context(self, exported, mechanism) -> FakeContext:
        ctx = FakeContext(mechanism=mechanism, initiator=True, exported_from=exported)
        self.contexts.append(ctx)
        return ctx


@attrs.define
class ForeignCredential:
    """Credential produced by some other provider."""

    name: Any
    init_lifetime: int
    accept_lifetime: int
    is_initiator: bool
    is_acceptor: bool


@attrs.define
class ForeignName:
    """Name produced by some other provider."""

    value: str
    name_type: Optional[MechanismIdentifier]

    def __str__(self) -> str:
        return self.value


# =============================================================================
# REALM AND PRINCIPAL FIXTURES
# =============================================================================


@pytest.fixture
def test_realm() -> Realm:
    """Test Kerberos realm."""
    return Realm("EXAMPLE.COM")


@pytest.fixture
def test_principal(test_realm: Realm) -> Principal:
    """Test user principal."""
    return Principal(name="testuser", realm=test_realm)


@pytest.fixture
def fixed_now() -> datetime:
    """Fixed reference time well inside the cache time range."""
    return datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# ENGINE AND FACTORY FIXTURES
# =============================================================================


@pytest.fixture
def fake_engine() -> FakeEngine:
    """In-memory mechanism engine."""
    return FakeEngine()


@pytest.fixture
def provider_record() -> ProviderRecord:
    """Record for this provider, without factories."""
    return ProviderRecord(
        name=PROVIDER_NAME,
        mechanisms=frozenset({KRB5_MECHANISM, SPNEGO_MECHANISM}),
        info="test",
        version="0.0.0",
    )


@pytest.fixture
def krb5_factory(fake_engine: FakeEngine, provider_record: ProviderRecord) -> MechanismFactory:
    """Kerberos factory over the fake engine."""
    factory = MechanismFactory(KRB5_MECHANISM, fake_engine, provider_record)
    provider_record.factories[KRB5_MECHANISM] = factory
    return factory


# =============================================================================
# REGISTRY AND CONFIGURATION FIXTURES
# =============================================================================


@pytest.fixture
def registry() -> ProviderRegistry:
    """Registry holding only the platform provider."""
    return ProviderRegistry([platform_provider()])


@pytest.fixture
def cache_config() -> CachePathConfig:
    """File-based platform default, nothing configured."""
    return CachePathConfig(in_memory_default=False)


@pytest.fixture
def kerberos_entry() -> LoginModuleEntry:
    """Kerberos login module entry."""
    return LoginModuleEntry(
        "com.sun.security.auth.module.Krb5LoginModule",
        options={"useTicketCache": "true", "doNotPrompt": "true"},
    )


@pytest.fixture
def login_entries(kerberos_entry: LoginModuleEntry) -> List[LoginModuleEntry]:
    """Kerberos entry between two unrelated entries."""
    return [
        LoginModuleEntry("org.example.AuditLoginModule", options={"log": "all"}),
        kerberos_entry,
        LoginModuleEntry("org.example.LdapLoginModule", options={"url": "ldap://dc"}),
    ]


@pytest.fixture
def static_login_config(login_entries: List[LoginModuleEntry]) -> StaticLoginConfiguration:
    """Login configuration with one "client" application."""
    return StaticLoginConfiguration({"client": login_entries})


@pytest.fixture
def decorator(
    static_login_config: StaticLoginConfiguration,
    cache_config: CachePathConfig,
) -> ConfigurationDecorator:
    """Decorator over the static login configuration."""
    return ConfigurationDecorator(delegate=static_login_config, cache_config=cache_config)


@pytest.fixture
def process_login_configuration():
    """Restore the process-wide login configuration after the test."""
    saved = get_configuration()
    set_configuration(StaticLoginConfiguration())
    yield
    set_configuration(saved)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def make_principal(name: str, realm: str = "EXAMPLE.COM") -> Principal:
    """Helper to create a principal."""
    return Principal(name=name, realm=Realm(realm))


def make_foreign_credential(
    initiator: bool = True,
    acceptor: bool = False,
    name: str = "alice@EXAMPLE.COM",
) -> ForeignCredential:
    """Helper to create a credential from another provider."""
    return ForeignCredential(
        name=ForeignName(name, None),
        init_lifetime=3600 if initiator else 0,
        accept_lifetime=7200 if acceptor else 0,
        is_initiator=initiator,
        is_acceptor=acceptor,
    )


# =============================================================================
# PYTEST MARKERS
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "native: marks tests requiring native GSSAPI"
    )
