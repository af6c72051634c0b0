"""
Credential Cache File Format

Writer for the MIT Kerberos file credential cache, version 4 (0x0504).
All integers are big-endian.

    file        = version(u16) header_len(u16) header default_principal credential*
    principal   = name_type(u32) count(u32) realm(data) component(data){count}
    data        = length(u32) bytes
    keyblock    = enctype(u16) data
    credential  = client server keyblock authtime starttime endtime renew_till
                  is_skey(u8) flags(u32) addresses(u32=0) authdata(u32=0)
                  ticket(data) second_ticket(data)

Times are unsigned 32-bit seconds since the epoch, as current MIT readers
treat them. The last representable instant is 2**32 - 1
(2106-02-07T06:28:15Z).
"""

from __future__ import annotations

import struct
from datetime import datetime, timedelta, timezone
from typing import List

import attrs
from attrs import field, validators
from pyasn1.codec.der import encoder as der_encoder
from pyasn1.type import char, namedtype, tag, univ

from gssmediator.core.exceptions import TimestampOverflow
from gssmediator.core.types import EncryptionType, Principal

FILE_FORMAT_VERSION = 0x0504

MAX_TIMESTAMP = 2**32 - 1
MIN_TIMESTAMP = 0

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

LATEST_REPRESENTABLE_TIME = EPOCH + timedelta(seconds=MAX_TIMESTAMP)

TICKET_VERSION = 5


# =============================================================================
# TIME ENCODING
# =============================================================================


def to_timestamp(value: datetime) -> int:
    """
    Convert an aware datetime to cache seconds.

    Raises:
        TimestampOverflow: If value is outside the representable range
    """
    if value.tzinfo is None:
        raise ValueError("Cache times must be timezone-aware")

    seconds = int((value - EPOCH).total_seconds())
    if not MIN_TIMESTAMP <= seconds <= MAX_TIMESTAMP:
        raise TimestampOverflow(
            f"{value.isoformat()} is outside the credential cache time range "
            f"(latest is {LATEST_REPRESENTABLE_TIME.isoformat()})"
        )
    return seconds


@attrs.define(frozen=True, slots=True)
class ValidityWindow:
    """
    Ticket validity times.

    INVARIANT: auth_time <= start_time <= end_time <= renew_till
    INVARIANT: every time fits the cache time representation
    """

    auth_time: datetime
    start_time: datetime
    end_time: datetime
    renew_till: datetime

    def __attrs_post_init__(self) -> None:
        if not self.auth_time <= self.start_time <= self.end_time <= self.renew_till:
            raise ValueError("Validity times must be ordered auth <= start <= end <= renew_till")
        for value in (self.auth_time, self.start_time, self.end_time, self.renew_till):
            to_timestamp(value)

    @classmethod
    def spanning(cls, start: datetime, lifetime: timedelta) -> ValidityWindow:
        """
        Window starting (and authenticated) at start, ending and renewable
        until start + lifetime.

        Raises:
            TimestampOverflow: If start + lifetime is not representable
        """
        start = start.replace(microsecond=0)
        end = start + lifetime
        return cls(auth_time=start, start_time=start, end_time=end, renew_till=end)


# =============================================================================
# TICKET ASN.1 (RFC 4120 section 5.3)
# =============================================================================


def _explicit(number: int) -> tag.Tag:
    return tag.Tag(tag.tagClassContext, tag.tagFormatConstructed, number)


class PrincipalNameAsn1(univ.Sequence):
    componentType = namedtype.NamedTypes(
        namedtype.NamedType("name-type", univ.Integer().subtype(explicitTag=_explicit(0))),
        namedtype.NamedType(
            "name-string",
            univ.SequenceOf(componentType=char.GeneralString()).subtype(explicitTag=_explicit(1)),
        ),
    )


class EncryptedDataAsn1(univ.Sequence):
    componentType = namedtype.NamedTypes(
        namedtype.NamedType("etype", univ.Integer().subtype(explicitTag=_explicit(0))),
        namedtype.OptionalNamedType("kvno", univ.Integer().subtype(explicitTag=_explicit(1))),
        namedtype.NamedType("cipher", univ.OctetString().subtype(explicitTag=_explicit(2))),
    )


class TicketAsn1(univ.Sequence):
    tagSet = univ.Sequence.tagSet.tagExplicitly(
        tag.Tag(tag.tagClassApplication, tag.tagFormatConstructed, 1)
    )
    componentType = namedtype.NamedTypes(
        namedtype.NamedType("tkt-vno", univ.Integer().subtype(explicitTag=_explicit(0))),
        namedtype.NamedType("realm", char.GeneralString().subtype(explicitTag=_explicit(1))),
        namedtype.NamedType("sname", PrincipalNameAsn1().subtype(explicitTag=_explicit(2))),
        namedtype.NamedType("enc-part", EncryptedDataAsn1().subtype(explicitTag=_explicit(3))),
    )


def encode_ticket(server: Principal, enctype: EncryptionType, cipher: bytes = b"") -> bytes:
    """DER-encode a Ticket for server whose encrypted part is cipher."""
    ticket = TicketAsn1()
    ticket["tkt-vno"] = TICKET_VERSION
    ticket["realm"] = server.realm.name

    sname = ticket["sname"]
    sname["name-type"] = int(server.name_type)
    for i, component in enumerate(server.components):
        sname["name-string"][i] = component

    enc_part = ticket["enc-part"]
    enc_part["etype"] = int(enctype)
    enc_part["cipher"] = cipher

    return der_encoder.encode(ticket)


# =============================================================================
# CACHE RECORDS
# =============================================================================


@attrs.define(frozen=True, slots=True)
class KeyBlock:
    """Key block of a cached credential. Material may be empty."""

    enctype: EncryptionType = field(validator=validators.instance_of(EncryptionType))
    material: bytes = field(default=b"", repr=False)


@attrs.define(frozen=True, slots=True)
class TicketCacheRecord:
    """One cached credential."""

    client: Principal
    server: Principal
    key: KeyBlock
    times: ValidityWindow
    ticket: bytes = field(repr=lambda t: f"<bytes:{len(t)}>")
    is_skey: bool = False
    flags: int = 0
    second_ticket: bytes = b""


def _pack_data(value: bytes) -> bytes:
    return struct.pack(">I", len(value)) + value


def _pack_principal(principal: Principal) -> bytes:
    components = principal.components
    parts: List[bytes] = [
        struct.pack(">II", int(principal.name_type), len(components)),
        _pack_data(principal.realm.name.encode("utf-8")),
    ]
    parts.extend(_pack_data(c.encode("utf-8")) for c in components)
    return b"".join(parts)


def _pack_credential(record: TicketCacheRecord) -> bytes:
    times = record.times
    return b"".join((
        _pack_principal(record.client),
        _pack_principal(record.server),
        struct.pack(">H", int(record.key.enctype)),
        _pack_data(record.key.material),
        struct.pack(
            ">IIII",
            to_timestamp(times.auth_time),
            to_timestamp(times.start_time),
            to_timestamp(times.end_time),
            to_timestamp(times.renew_till),
        ),
        struct.pack(">BI", 1 if record.is_skey else 0, record.flags),
        struct.pack(">I", 0),  # addresses
        struct.pack(">I", 0),  # authdata
        _pack_data(record.ticket),
        _pack_data(record.second_ticket),
    ))


def serialize_cache(default_principal: Principal, records: List[TicketCacheRecord]) -> bytes:
    """
    Serialize a complete version 4 cache file.

    The header carries no tags (no KDC time offset).
    """
    parts = [
        struct.pack(">HH", FILE_FORMAT_VERSION, 0),
        _pack_principal(default_principal),
    ]
    parts.extend(_pack_credential(record) for record in records)
    return b"".join(parts)
