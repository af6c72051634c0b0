"""
GSSMediator Token Framing

Reconstructs and parses framed security tokens (RFC 2743 section 3.1):

    0x60 | DER length | DER OBJECT IDENTIFIER (mechanism) | inner token

The declared DER length covers the mechanism OID and the inner token.

The calling framework strips this header before handing the rest of a
first token to a mechanism and passes the inner length; on later tokens
it passes -1 and the whole token. Only two input shapes are supported:
a known length, or a fully-buffered source holding exactly one token.
Anything else is refused rather than guessed at.
"""

from __future__ import annotations

import io
from typing import BinaryIO, Tuple, Union

import attrs
import structlog
from attrs import field, validators

from gssmediator.core.exceptions import DefectiveToken, EndOfStream, UnavailableOperation
from gssmediator.core.types import KRB5_MECHANISM, MechanismIdentifier

logger = structlog.get_logger()

TOKEN_TAG = 0x60

UNKNOWN_LENGTH = -1

TokenSource = Union[bytes, bytearray, memoryview, BinaryIO]


# =============================================================================
# DER LENGTHS
# =============================================================================


def encode_der_length(length: int) -> bytes:
    """Encode a DER definite length."""
    if length < 0:
        raise ValueError(f"Negative length: {length}")
    if length < 0x80:
        return bytes((length,))
    octets = length.to_bytes((length.bit_length() + 7) // 8, "big")
    if len(octets) > 0x7E:
        raise ValueError(f"Length too large to encode: {length}")
    return bytes((0x80 | len(octets),)) + octets


def decode_der_length(data: bytes, offset: int) -> Tuple[int, int]:
    """
    Decode a DER definite length starting at offset.

    Returns:
        (length, offset just past the length octets)
    """
    if offset >= len(data):
        raise EndOfStream("Token ends before length")

    first = data[offset]
    offset += 1
    if first < 0x80:
        return first, offset
    if first == 0x80:
        raise DefectiveToken("Indefinite length is not allowed in token header")

    count = first & 0x7F
    if offset + count > len(data):
        raise EndOfStream("Token ends inside length")
    octets = data[offset:offset + count]
    if octets[0] == 0:
        raise DefectiveToken("Length is not minimally encoded")
    return int.from_bytes(octets, "big"), offset + count


# =============================================================================
# FRAMED TOKEN
# =============================================================================


def encode_header(mechanism: MechanismIdentifier, inner_length: int) -> bytes:
    """
    Build the token header for an inner token of the given length.

    Args:
        mechanism: Mechanism the token belongs to
        inner_length: Length of the inner token following the header
    """
    oid = mechanism.to_der()
    return bytes((TOKEN_TAG,)) + encode_der_length(len(oid) + inner_length) + oid


@attrs.define(frozen=True, slots=True)
class FramedToken:
    """
    Security token with its mechanism header.

    INVARIANT: len(payload) == length
    """

    mechanism: MechanismIdentifier = field(validator=validators.instance_of(MechanismIdentifier))
    payload: bytes = field(converter=bytes, repr=lambda p: f"<bytes:{len(p)}>")
    length: int = field()

    @length.default
    def _default_length(self) -> int:
        return len(self.payload)

    @length.validator
    def _check_length(self, attribute: attrs.Attribute, value: int) -> None:
        if value != len(self.payload):
            raise ValueError(
                f"Declared length {value} does not match payload length {len(self.payload)}"
            )

    @property
    def header(self) -> bytes:
        return encode_header(self.mechanism, self.length)

    def encode(self) -> bytes:
        return self.header + self.payload

    @classmethod
    def decode(cls, data: bytes) -> FramedToken:
        """
        Parse a complete framed token.

        Raises:
            DefectiveToken: If the header is malformed or data trails the token
            EndOfStream: If data is shorter than the declared length
        """
        data = bytes(data)
        if not data:
            raise EndOfStream("Empty token")
        if data[0] != TOKEN_TAG:
            raise DefectiveToken(f"Unexpected token tag 0x{data[0]:02x}")

        declared, offset = decode_der_length(data, 1)
        total = offset + declared
        if len(data) < total:
            raise EndOfStream(
                f"Token declares {declared} bytes but only {len(data) - offset} are present"
            )
        if len(data) > total:
            raise DefectiveToken(f"{len(data) - total} trailing bytes after token")

        try:
            mechanism, rest = MechanismIdentifier.from_der(data[offset:total])
        except ValueError as e:
            raise DefectiveToken(f"Bad mechanism identifier in token header: {e}") from e

        return cls(mechanism=mechanism, payload=rest)


# =============================================================================
# READING TOKENS
# =============================================================================


def read_exactly(source: BinaryIO, count: int) -> bytes:
    """
    Read exactly count bytes from source.

    Raises:
        EndOfStream: If the source ends first
    """
    if count == 0:
        return b""

    chunks = []
    remaining = count
    while remaining > 0:
        chunk = source.read(remaining)
        if not chunk:
            raise EndOfStream(
                f"Premature end of stream, read {count - remaining} of {count} bytes"
            )
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def _is_buffered(source: TokenSource) -> bool:
    return isinstance(source, (bytes, bytearray, memoryview, io.BytesIO))


def read_token(
    source: TokenSource,
    mech_token_len: int = UNKNOWN_LENGTH,
    mechanism: MechanismIdentifier = KRB5_MECHANISM,
) -> bytes:
    """
    Read one complete framed token.

    A non-negative mech_token_len means the header was already consumed
    upstream: it is regenerated and prefixed to exactly that many bytes
    read from source. A negative length requires a fully-buffered source,
    whose remaining content is the whole token.

    Args:
        source: bytes-like object or binary stream
        mech_token_len: Inner token length, or -1 if unknown
        mechanism: Mechanism used for a regenerated header

    Raises:
        EndOfStream: If fewer than mech_token_len bytes are available
        UnavailableOperation: If the length is unknown and source is a stream
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        source = io.BytesIO(bytes(source))

    if mech_token_len >= 0:
        return encode_header(mechanism, mech_token_len) + read_exactly(source, mech_token_len)

    if not _is_buffered(source):
        logger.debug("unsupported_token_source", source_type=type(source).__name__)
        raise UnavailableOperation("Streaming methods are not supported")

    return source.read()
