"""
GSSMediator Credential Cache

Components:
- format: MIT file credential cache (version 4) writer
- emulator: Decoy cache policy and fabrication
"""

from gssmediator.ccache.emulator import TicketCacheEmulator, create_fake_cache, is_in_memory_cache
from gssmediator.ccache.format import TicketCacheRecord, ValidityWindow, serialize_cache

__all__ = [
    "TicketCacheEmulator",
    "create_fake_cache",
    "is_in_memory_cache",
    "TicketCacheRecord",
    "ValidityWindow",
    "serialize_cache",
]
