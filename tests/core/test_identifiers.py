import pytest

from dlms_toolkit.core.errors import ErrorKind, IdentifierExhaustionError
from dlms_toolkit.core.identifiers import IdRegistry, join_id, order_of, parent_of, split_id


class TestPathHelpers:

    def test_join_and_split(self):
        assert join_id(None, 3) == "3"
        assert join_id("3-2", 1) == "3-2-1"
        assert split_id("3-2-1") == ["3", "2", "1"]

    def test_parent_of(self):
        assert parent_of("3-2-1") == "3-2"
        assert parent_of("3") is None

    def test_order_of_uses_leading_digits(self):
        assert order_of("1-2") == 2
        assert order_of("1-2_1") == 2
        assert order_of("1-abc") == 0
        assert order_of("4.2", separator=".") == 2


class TestIdRegistry:

    def test_duplicate_claim_is_suffixed(self):
        registry = IdRegistry()
        assert registry.claim("1-2") == "1-2"
        assert registry.claim("1-2") == "1-2_1"
        assert registry.claim("1-2") == "1-2_2"
        assert "1-2_1" in registry

    def test_exhaustion_raises(self):
        registry = IdRegistry(max_suffix_attempts=2)
        registry.claim("a")
        registry.claim("a")
        registry.claim("a")
        with pytest.raises(IdentifierExhaustionError) as excinfo:
            registry.claim("a")
        assert excinfo.value.kind is ErrorKind.IDENTIFIER_EXHAUSTION
        assert excinfo.value.kind.fatal
        assert excinfo.value.context == {"base_id": "a", "attempts": 2}

    def test_release_only_by_current_owner(self):
        registry = IdRegistry()
        registry.claim("1", "h1")
        registry.assign("1", "h2")
        assert registry.release("1", "h1") is False
        assert registry.owner("1") == "h2"
        assert registry.release("1", "h2") is True
        assert "1" not in registry

    def test_release_without_owner_keeps_live_ids(self):
        registry = IdRegistry()
        registry.claim("1", "live")
        registry.claim("2")
        assert registry.release("1") is False
        assert registry.release("2") is True
        assert list(registry) == ["1"]

    def test_clear(self):
        registry = IdRegistry()
        registry.claim("1")
        registry.clear()
        assert len(registry) == 0
        assert registry.claim("1") == "1"
