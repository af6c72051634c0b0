"""
Unit tests for gssmediator.provider.registry module.
"""

import pytest

from gssmediator.core.types import KRB5_MECHANISM, SPNEGO_MECHANISM, MechanismIdentifier, ProviderRecord
from gssmediator.provider.registry import (
    PLATFORM_PROVIDER_NAME,
    ProviderRegistry,
    default_registry,
    platform_provider,
)


def make_record(name: str, *mechanisms: MechanismIdentifier) -> ProviderRecord:
    return ProviderRecord(name=name, mechanisms=frozenset(mechanisms or {KRB5_MECHANISM}))


class TestProviderRegistry:
    """Tests for ProviderRegistry."""

    def test_initial_priorities(self):
        """Test priorities follow list position."""
        registry = ProviderRegistry([make_record("A"), make_record("B")])
        assert [(p.name, p.priority) for p in registry.providers()] == [("A", 1), ("B", 2)]

    def test_insert_at_front(self, registry):
        """Test inserting at 1 shifts the others down."""
        assert registry.insert_at(make_record("Mine"), 1) == 1

        providers = registry.providers()
        assert [(p.name, p.priority) for p in providers] == [("Mine", 1), (PLATFORM_PROVIDER_NAME, 2)]

    @pytest.mark.parametrize("position,expected", [(0, 1), (-5, 1), (99, 2)])
    def test_insert_position_clamped(self, registry, position, expected):
        """Test positions outside the list are clamped."""
        assert registry.insert_at(make_record("Mine"), position) == expected
        assert registry.get("Mine").priority == expected

    def test_duplicate_name_rejected(self, registry):
        """Test a name can be registered once."""
        with pytest.raises(ValueError):
            registry.insert_at(platform_provider(), 1)
        assert len(registry.providers()) == 1

    def test_record_identity_survives_renumbering(self, registry):
        """Test a renumbered record still equals the inserted one."""
        record = make_record("Late")
        registry.insert_at(record, 2)
        registry.insert_at(make_record("Early"), 1)

        stored = registry.get("Late")
        assert stored.priority == 3
        assert stored == record

    def test_factories_shared_after_renumbering(self, registry):
        """Test renumbering keeps the factory mapping."""
        record = make_record("Mine")
        record.factories[KRB5_MECHANISM] = object()
        registry.insert_at(record, 2)
        registry.insert_at(make_record("Other"), 1)

        assert registry.get("Mine").factory_for(KRB5_MECHANISM) is record.factories[KRB5_MECHANISM]

    def test_remove(self, registry):
        """Test removal reports whether anything was removed."""
        registry.insert_at(make_record("Mine"), 1)

        assert registry.remove(PLATFORM_PROVIDER_NAME) is True
        assert registry.remove(PLATFORM_PROVIDER_NAME) is False
        assert [(p.name, p.priority) for p in registry.providers()] == [("Mine", 1)]

    def test_get_missing(self, registry):
        """Test an unknown name yields None."""
        assert registry.get("Nobody") is None

    def test_resolve_follows_priority(self, registry):
        """Test resolution picks the highest-priority supporting provider."""
        assert registry.resolve(KRB5_MECHANISM).name == PLATFORM_PROVIDER_NAME

        registry.insert_at(make_record("Mine", KRB5_MECHANISM), 1)
        assert registry.resolve(KRB5_MECHANISM).name == "Mine"
        assert registry.resolve(SPNEGO_MECHANISM).name == PLATFORM_PROVIDER_NAME

    def test_resolve_unsupported(self, registry):
        """Test an unsupported mechanism resolves to None."""
        assert registry.resolve(MechanismIdentifier("1.2.3.4")) is None

    def test_providers_is_snapshot(self, registry):
        """Test the returned list is a copy."""
        snapshot = registry.providers()
        snapshot.clear()
        assert len(registry.providers()) == 1


class TestDefaultRegistry:
    """Tests for the process-wide registry."""

    def test_singleton(self):
        """Test the same registry is returned every time."""
        assert default_registry() is default_registry()

    def test_platform_provider_supports_kerberos(self):
        """Test the platform record offers Kerberos and SPNEGO."""
        record = platform_provider()
        assert record.supports(KRB5_MECHANISM)
        assert record.supports(SPNEGO_MECHANISM)
