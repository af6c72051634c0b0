"""
Property-based tests for token framing and cache time encoding.

Tests that regenerated headers always describe their payload and that
cache timestamps are accepted exactly up to the 32-bit boundary.
"""

import io
from datetime import timedelta

import pytest
from hypothesis import given, strategies as st

from gssmediator.ccache.format import EPOCH, LATEST_REPRESENTABLE_TIME, MAX_TIMESTAMP, to_timestamp
from gssmediator.core.exceptions import TimestampOverflow
from gssmediator.core.types import KRB5_MECHANISM, SPNEGO_MECHANISM, MechanismIdentifier
from gssmediator.tokens import (
    FramedToken,
    decode_der_length,
    encode_der_length,
    encode_header,
    read_token,
)


# =============================================================================
# STRATEGIES
# =============================================================================

mechanism_strategy = st.sampled_from([KRB5_MECHANISM, SPNEGO_MECHANISM])

# Arbitrary OIDs under the 0 and 1 roots
oid_strategy = st.builds(
    lambda first, second, rest: MechanismIdentifier(".".join(map(str, (first, second, *rest)))),
    st.integers(min_value=0, max_value=1),
    st.integers(min_value=0, max_value=39),
    st.lists(st.integers(min_value=0, max_value=2**32), max_size=8),
)

payload_strategy = st.binary(max_size=2048)


# =============================================================================
# FRAMING PROPERTIES
# =============================================================================


class TestFramingProperties:
    """Property-based tests for token headers."""

    @given(st.integers(min_value=0, max_value=2**32))
    def test_der_length_decodes(self, length: int):
        """Property: Encoded lengths decode to themselves."""
        encoded = encode_der_length(length)
        assert decode_der_length(encoded, 0) == (length, len(encoded))

    @given(mechanism_strategy, payload_strategy)
    def test_framed_token_decodes(self, mechanism, payload: bytes):
        """Property: A framed token yields its mechanism and payload."""
        token = FramedToken.decode(FramedToken(mechanism, payload).encode())
        assert token.mechanism == mechanism
        assert token.payload == payload

    @given(oid_strategy, st.integers(min_value=0, max_value=100000))
    def test_header_declares_remaining_length(self, mechanism, inner_length: int):
        """Property: The declared length covers the OID and the inner token."""
        header = encode_header(mechanism, inner_length)
        declared, offset = decode_der_length(header, 1)

        assert header[0] == 0x60
        assert declared == len(header) - offset + inner_length
        assert header[offset:] == mechanism.to_der()

    @given(mechanism_strategy, payload_strategy, st.binary(max_size=64))
    def test_read_token_with_known_length(self, mechanism, payload: bytes, trailer: bytes):
        """Property: Exactly L bytes are consumed and framed."""
        source = io.BytesIO(payload + trailer)
        token = read_token(source, len(payload), mechanism)

        assert token == encode_header(mechanism, len(payload)) + payload
        assert source.read() == trailer

    @given(mechanism_strategy, payload_strategy)
    def test_read_token_complete_is_identity(self, mechanism, payload: bytes):
        """Property: A complete token with unknown length passes unchanged."""
        data = FramedToken(mechanism, payload).encode()
        assert read_token(data) == data
        assert read_token(io.BytesIO(data)) == data


# =============================================================================
# TIMESTAMP PROPERTIES
# =============================================================================


class TestTimestampProperties:
    """Property-based tests for cache timestamps."""

    @given(st.integers(min_value=0, max_value=MAX_TIMESTAMP))
    def test_representable_times(self, seconds: int):
        """Property: Every second up to the boundary encodes to its offset."""
        assert to_timestamp(EPOCH + timedelta(seconds=seconds)) == seconds

    @given(st.integers(min_value=1, max_value=10**9))
    def test_times_past_boundary_overflow(self, seconds: int):
        """Property: Every second past the boundary is rejected."""
        with pytest.raises(TimestampOverflow):
            to_timestamp(LATEST_REPRESENTABLE_TIME + timedelta(seconds=seconds))
