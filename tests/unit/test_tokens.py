"""
Unit tests for gssmediator.tokens module.

Tests header regeneration, known-length and buffered reads, and the
refusal of stream shapes that cannot be framed.
"""

import io

import pytest

from gssmediator.core.exceptions import DefectiveToken, EndOfStream, UnavailableOperation
from gssmediator.core.types import KRB5_MECHANISM, SPNEGO_MECHANISM
from gssmediator.tokens import (
    FramedToken,
    decode_der_length,
    encode_der_length,
    encode_header,
    read_exactly,
    read_token,
)

KRB5_OID_DER = bytes.fromhex("06092a864886f712010202")


class TrickleStream(io.RawIOBase):
    """Stream returning at most one byte per read."""

    def __init__(self, data: bytes):
        self._data = data
        self._pos = 0

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        if self._pos >= len(self._data):
            return b""
        chunk = self._data[self._pos:self._pos + 1]
        self._pos += 1
        return chunk


class TestDerLength:
    """Tests for DER length encoding."""

    def test_short_form(self):
        """Test lengths below 128 use one octet."""
        assert encode_der_length(0) == b"\x00"
        assert encode_der_length(127) == b"\x7f"

    def test_long_form(self):
        """Test lengths from 128 use the long form."""
        assert encode_der_length(128) == b"\x81\x80"
        assert encode_der_length(0x1234) == b"\x82\x12\x34"

    def test_negative_rejected(self):
        """Test negative lengths cannot be encoded."""
        with pytest.raises(ValueError):
            encode_der_length(-1)

    def test_decode_long_form(self):
        """Test long form decodes with the following offset."""
        assert decode_der_length(b"\x00\x82\x12\x34\xff", 1) == (0x1234, 4)

    def test_decode_indefinite_rejected(self):
        """Test indefinite length is a defective header."""
        with pytest.raises(DefectiveToken):
            decode_der_length(b"\x80", 0)

    def test_decode_non_minimal_rejected(self):
        """Test leading zero length octets are rejected."""
        with pytest.raises(DefectiveToken):
            decode_der_length(b"\x82\x00\x05", 0)

    def test_decode_truncated(self):
        """Test a length cut short is an end of stream."""
        with pytest.raises(EndOfStream):
            decode_der_length(b"\x82\x12", 0)


class TestEncodeHeader:
    """Tests for token header generation."""

    def test_krb5_header(self):
        """Test the declared length covers the OID and the inner token."""
        header = encode_header(KRB5_MECHANISM, 5)
        assert header == b"\x60\x10" + KRB5_OID_DER

    def test_empty_inner_token(self):
        """Test a zero-length inner token still gets a header."""
        assert encode_header(KRB5_MECHANISM, 0) == b"\x60\x0b" + KRB5_OID_DER

    def test_long_inner_token(self):
        """Test long form length for large tokens."""
        header = encode_header(KRB5_MECHANISM, 200)
        assert header[:3] == b"\x60\x81\xd3"
        assert header[3:] == KRB5_OID_DER

    def test_spnego_header(self):
        """Test the header carries the given mechanism."""
        header = encode_header(SPNEGO_MECHANISM, 1)
        assert header == b"\x60\x09\x06\x06\x2b\x06\x01\x05\x05\x02"


class TestFramedToken:
    """Tests for FramedToken."""

    def test_encode(self):
        """Test encoding prefixes the header."""
        token = FramedToken(KRB5_MECHANISM, b"\x01\x00abc")
        assert token.length == 5
        assert token.encode() == encode_header(KRB5_MECHANISM, 5) + b"\x01\x00abc"

    def test_encoded_size_is_header_plus_length(self):
        """Test total size equals header size plus declared length."""
        token = FramedToken(KRB5_MECHANISM, b"x" * 300)
        assert len(token.encode()) == len(token.header) + token.length

    def test_length_must_match_payload(self):
        """Test a declared length different from the payload is rejected."""
        with pytest.raises(ValueError):
            FramedToken(KRB5_MECHANISM, b"abc", length=4)

    def test_decode(self):
        """Test decoding recovers mechanism and payload."""
        data = encode_header(KRB5_MECHANISM, 3) + b"xyz"
        token = FramedToken.decode(data)
        assert token.mechanism == KRB5_MECHANISM
        assert token.payload == b"xyz"

    def test_decode_empty_payload(self):
        """Test a header-only token decodes to an empty payload."""
        token = FramedToken.decode(encode_header(KRB5_MECHANISM, 0))
        assert token.payload == b""
        assert token.length == 0

    def test_decode_trailing_data(self):
        """Test bytes past the declared length are rejected."""
        data = encode_header(KRB5_MECHANISM, 3) + b"xyz!"
        with pytest.raises(DefectiveToken):
            FramedToken.decode(data)

    def test_decode_short_body(self):
        """Test a body shorter than declared is an end of stream."""
        data = encode_header(KRB5_MECHANISM, 3) + b"xy"
        with pytest.raises(EndOfStream):
            FramedToken.decode(data)

    def test_decode_bad_tag(self):
        """Test a token not starting with 0x60 is rejected."""
        with pytest.raises(DefectiveToken):
            FramedToken.decode(b"\x61\x0b" + KRB5_OID_DER)

    def test_decode_bad_oid(self):
        """Test a header without an OID is rejected."""
        with pytest.raises(DefectiveToken):
            FramedToken.decode(b"\x60\x03\x04\x01\x00")

    def test_decode_empty(self):
        """Test an empty token is an end of stream."""
        with pytest.raises(EndOfStream):
            FramedToken.decode(b"")


class TestReadExactly:
    """Tests for read_exactly."""

    def test_loops_on_short_reads(self):
        """Test short reads are retried until count bytes arrive."""
        assert read_exactly(TrickleStream(b"abcdef"), 4) == b"abcd"

    def test_premature_end(self):
        """Test exhaustion before count raises EndOfStream."""
        with pytest.raises(EndOfStream) as exc_info:
            read_exactly(io.BytesIO(b"abc"), 4)
        assert isinstance(exc_info.value, EOFError)

    def test_zero_reads_nothing(self):
        """Test reading zero bytes consumes nothing."""
        source = io.BytesIO(b"abc")
        assert read_exactly(source, 0) == b""
        assert source.read() == b"abc"


class TestReadToken:
    """Tests for read_token."""

    def test_known_length_regenerates_header(self):
        """Test the stripped header is rebuilt in front of exactly L bytes."""
        source = io.BytesIO(b"hello world")
        token = read_token(source, 5, KRB5_MECHANISM)
        assert token == encode_header(KRB5_MECHANISM, 5) + b"hello"
        assert source.read() == b" world"

    def test_known_length_from_bytes(self):
        """Test bytes-like sources are accepted with a known length."""
        token = read_token(bytearray(b"abc"), 3)
        assert FramedToken.decode(token).payload == b"abc"

    def test_known_length_from_unbuffered_stream(self):
        """Test any stream works when the length is known."""
        token = read_token(TrickleStream(b"abcdef"), 6)
        assert FramedToken.decode(token).payload == b"abcdef"

    def test_zero_length(self):
        """Test zero length yields an empty body without error."""
        token = read_token(io.BytesIO(b"unused"), 0)
        assert FramedToken.decode(token).payload == b""

    def test_known_length_short_source(self):
        """Test a source shorter than the length raises EndOfStream."""
        with pytest.raises(EndOfStream):
            read_token(io.BytesIO(b"abc"), 10)

    def test_unknown_length_bytes(self):
        """Test a complete token passed as bytes is returned unchanged."""
        data = encode_header(KRB5_MECHANISM, 2) + b"ok"
        assert read_token(data) == data

    def test_unknown_length_bytesio(self):
        """Test a buffered stream yields its remaining content."""
        data = encode_header(KRB5_MECHANISM, 2) + b"ok"
        source = io.BytesIO(b"xx" + data)
        source.read(2)
        assert read_token(source) == data

    def test_unknown_length_stream_unsupported(self):
        """Test an unknown length from a stream is refused."""
        with pytest.raises(UnavailableOperation) as exc_info:
            read_token(TrickleStream(b"abc"))
        assert exc_info.value.code == UnavailableOperation.GSS_S_UNAVAILABLE

    def test_unknown_length_buffered_reader_unsupported(self):
        """Test wrapped streams are not treated as fully buffered."""
        with pytest.raises(UnavailableOperation):
            read_token(io.BufferedReader(io.BytesIO(b"abc")))
