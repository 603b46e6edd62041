import pytest

from conftest import ident

from tabletop.errors import StateError
from tabletop.registry import ConnectionRegistry


def test_bind_and_lookup():
    registry = ConnectionRegistry()
    binding = registry.bind("c1", "R", ident("c1", "Pip"))

    assert registry.lookup("c1") == binding
    assert "c1" in registry
    assert registry.connections_in("R") == ["c1"]
    assert registry.rooms() == {"R"}
    assert len(registry) == 1


def test_rebinding_to_the_same_room_replaces_identity():
    registry = ConnectionRegistry()
    registry.bind("c1", "R", ident("c1", "Pip"))
    registry.bind("c1", "R", ident("c1", "Pippin"))
    assert registry.lookup("c1").identity.display_name == "Pippin"
    assert len(registry) == 1


def test_one_room_per_connection():
    registry = ConnectionRegistry()
    registry.bind("c1", "R", ident("c1", "Pip"))
    with pytest.raises(StateError) as excinfo:
        registry.bind("c1", "Other", ident("c1", "Pip"))
    assert excinfo.value.kind == "AlreadyBound"
    assert registry.lookup("c1").room == "R"


def test_unbind_is_idempotent():
    registry = ConnectionRegistry()
    registry.bind("c1", "R", ident("c1", "Pip"))
    assert registry.unbind("c1") is not None
    assert registry.unbind("c1") is None
    assert registry.lookup("c1") is None
    assert registry.connections_in("R") == []


def test_connections_are_listed_per_room():
    registry = ConnectionRegistry()
    registry.bind("a", "R", ident("a", "A"))
    registry.bind("b", "S", ident("b", "B"))
    registry.bind("c", "R", ident("c", "C"))
    assert registry.connections_in("R") == ["a", "c"]
    assert registry.connections_in("S") == ["b"]
    assert registry.connections_in("missing") == []
