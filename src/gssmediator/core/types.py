"""
GSSMediator Core Types

Value types shared by the installer, the capability mediator, the
credential cache emulator and the token framer.

Design Principles:
- Immutable: value types use frozen attrs
- Validated: constraints enforced at construction
- Compared by value: identifiers and records are plain data
"""

from __future__ import annotations

from enum import Enum, IntEnum, auto
from typing import Any, Dict, FrozenSet, Tuple

import attrs
from attrs import field, validators
from pyasn1.codec.der import decoder as der_decoder
from pyasn1.codec.der import encoder as der_encoder
from pyasn1.error import PyAsn1Error
from pyasn1.type import univ


# =============================================================================
# MECHANISM IDENTIFIERS
# =============================================================================


def _parse_arcs(dotted: str) -> Tuple[int, ...]:
    parts = dotted.strip().split(".")
    try:
        arcs = tuple(int(part) for part in parts)
    except ValueError:
        raise ValueError(f"Invalid object identifier: {dotted!r}") from None

    if len(arcs) < 2:
        raise ValueError(f"Object identifier needs at least two arcs: {dotted!r}")
    if any(arc < 0 for arc in arcs):
        raise ValueError(f"Object identifier arcs must be non-negative: {dotted!r}")
    if arcs[0] > 2 or (arcs[0] < 2 and arcs[1] >= 40):
        raise ValueError(f"Invalid leading arcs in object identifier: {dotted!r}")
    return arcs


@attrs.define(frozen=True, slots=True)
class MechanismIdentifier:
    """
    Globally unique object identifier naming a mechanism or a name type.

    Stored in dotted numeric form (e.g. "1.2.840.113554.1.2.2").

    INVARIANT: dotted is a syntactically valid OID
    """

    dotted: str = field(validator=validators.instance_of(str))

    def __attrs_post_init__(self) -> None:
        arcs = _parse_arcs(self.dotted)
        # Normalize away whitespace and leading zeros
        object.__setattr__(self, "dotted", ".".join(str(arc) for arc in arcs))

    @property
    def arcs(self) -> Tuple[int, ...]:
        """Return the numeric arcs of this identifier."""
        return _parse_arcs(self.dotted)

    def to_der(self) -> bytes:
        """Encode as a DER OBJECT IDENTIFIER (tag, length and value)."""
        return der_encoder.encode(univ.ObjectIdentifier(self.arcs))

    @classmethod
    def from_der(cls, data: bytes) -> Tuple[MechanismIdentifier, bytes]:
        """
        Decode a DER OBJECT IDENTIFIER from the start of data.

        Returns:
            (identifier, remaining bytes)
        """
        try:
            value, rest = der_decoder.decode(data, asn1Spec=univ.ObjectIdentifier())
        except PyAsn1Error as e:
            raise ValueError(f"Invalid DER object identifier: {e}") from e
        return cls(".".join(str(arc) for arc in value.asTuple())), bytes(rest)

    def __str__(self) -> str:
        return self.dotted


KRB5_MECHANISM = MechanismIdentifier("1.2.840.113554.1.2.2")
SPNEGO_MECHANISM = MechanismIdentifier("1.3.6.1.5.5.2")

# Name types (RFC 2743 section 4, RFC 1964 section 2.1)
NT_USER_NAME = MechanismIdentifier("1.2.840.113554.1.2.1.1")
NT_HOSTBASED_SERVICE = MechanismIdentifier("1.2.840.113554.1.2.1.4")
NT_EXPORT_NAME = MechanismIdentifier("1.3.6.1.5.6.4")
NT_KRB5_PRINCIPAL = MechanismIdentifier("1.2.840.113554.1.2.2.1")

KRB5_NAME_TYPES: Tuple[MechanismIdentifier, ...] = (
    NT_USER_NAME,
    NT_HOSTBASED_SERVICE,
    NT_EXPORT_NAME,
    NT_KRB5_PRINCIPAL,
)


# =============================================================================
# ENUMS
# =============================================================================


class CredentialUsage(Enum):
    """How a credential may be used."""

    INITIATE_AND_ACCEPT = 0
    INITIATE_ONLY = 1
    ACCEPT_ONLY = 2

    @property
    def can_initiate(self) -> bool:
        return self is not CredentialUsage.ACCEPT_ONLY

    @property
    def can_accept(self) -> bool:
        return self is not CredentialUsage.INITIATE_ONLY


class InstallState(Enum):
    """
    Provider installation states.

    FAILED is terminal, INSTALLING is transient.
    """

    NOT_ATTEMPTED = auto()
    INSTALLING = auto()
    INSTALLED_SELF = auto()
    INSTALLED_EXTERNALLY = auto()
    FAILED = auto()

    @property
    def is_installed(self) -> bool:
        return self in (InstallState.INSTALLED_SELF, InstallState.INSTALLED_EXTERNALLY)


class EncryptionType(IntEnum):
    """
    Kerberos encryption types.

    Values match RFC 3961 / RFC 3962 assigned numbers.
    """

    AES256_CTS_HMAC_SHA1_96 = 18
    AES128_CTS_HMAC_SHA1_96 = 17
    RC4_HMAC = 23


class PrincipalNameType(IntEnum):
    """Kerberos principal name types per RFC 4120 section 6.2."""

    NT_UNKNOWN = 0
    NT_PRINCIPAL = 1
    NT_SRV_INST = 2
    NT_SRV_HST = 3


# =============================================================================
# IDENTITY TYPES
# =============================================================================


@attrs.define(frozen=True, slots=True)
class Realm:
    """
    Kerberos realm.

    Realm names are case-sensitive and kept exactly as configured.
    """

    name: str = field(validator=[validators.instance_of(str), validators.min_len(1)])

    def __str__(self) -> str:
        return self.name


@attrs.define(frozen=True, slots=True)
class Principal:
    """
    Kerberos principal.

    Format: name@realm, where name may have several "/"-separated
    components (e.g. krbtgt/EXAMPLE.COM@EXAMPLE.COM).

    INVARIANT: name and realm are non-empty
    """

    name: str = field(validator=[validators.instance_of(str), validators.min_len(1)])
    realm: Realm = field(validator=validators.instance_of(Realm))
    name_type: PrincipalNameType = PrincipalNameType.NT_PRINCIPAL

    @classmethod
    def from_string(
        cls,
        principal_str: str,
        name_type: PrincipalNameType = PrincipalNameType.NT_PRINCIPAL,
    ) -> Principal:
        """
        Parse principal from string format.

        Examples:
            "user@REALM.COM" -> Principal(name="user", realm=Realm("REALM.COM"))
            "krbtgt/REALM@REALM.COM" -> Principal(name="krbtgt/REALM", realm=Realm("REALM.COM"))
        """
        if "@" not in principal_str:
            raise ValueError(f"Invalid principal format: {principal_str}")

        at_pos = principal_str.rfind("@")
        return cls(
            name=principal_str[:at_pos],
            realm=Realm(principal_str[at_pos + 1 :]),
            name_type=name_type,
        )

    @classmethod
    def krbtgt(cls, realm: Realm) -> Principal:
        """Ticket-granting service principal for a realm."""
        return cls(
            name=f"krbtgt/{realm.name}",
            realm=realm,
            name_type=PrincipalNameType.NT_SRV_INST,
        )

    @property
    def components(self) -> Tuple[str, ...]:
        return tuple(self.name.split("/"))

    def __str__(self) -> str:
        return f"{self.name}@{self.realm}"


# =============================================================================
# PROVIDER RECORDS
# =============================================================================


@attrs.define(frozen=True, slots=True)
class ProviderRecord:
    """
    Entry in the process-wide mechanism registry.

    The registry assigns priority as the 1-based position of the record,
    1 being the highest. factories maps each supported mechanism to the
    object that creates its capability objects. Neither priority nor
    factories takes part in equality, so a record keeps its identity
    when the registry renumbers it.
    """

    name: str = field(validator=[validators.instance_of(str), validators.min_len(1)])
    mechanisms: FrozenSet[MechanismIdentifier] = field(converter=frozenset, factory=frozenset)
    priority: int = field(default=0, eq=False)
    info: str = ""
    version: str = ""
    factories: Dict[MechanismIdentifier, Any] = field(
        factory=dict, eq=False, repr=False
    )

    def supports(self, mechanism: MechanismIdentifier) -> bool:
        return mechanism in self.mechanisms

    def factory_for(self, mechanism: MechanismIdentifier) -> Any:
        """Return the capability factory for a mechanism, or None."""
        return self.factories.get(mechanism)
