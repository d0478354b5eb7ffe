import pytest
from pydantic import ValidationError

from shared.models.scope import Scope


def test_wire_round_trip():
    assert Scope.from_wire("global") == Scope.global_scope()
    assert Scope.from_wire("global").is_global
    assert Scope.from_wire(" initiative-1 ") == Scope.initiative("initiative-1")
    assert Scope.initiative("initiative-1").to_wire() == "initiative-1"
    assert Scope.global_scope().to_wire() == "global"


def test_scopes_are_hashable_values():
    assert len({Scope.global_scope(), Scope.from_wire("global"), Scope.initiative("a")}) == 2


@pytest.mark.parametrize("raw", ["", "   ", "../escape", "a/b", "..", "."])
def test_invalid_initiative_ids_are_rejected(raw):
    with pytest.raises((ValueError, ValidationError)):
        Scope.from_wire(raw)


def test_path_parts():
    assert Scope.global_scope().path_parts() == ("global",)
    assert Scope.initiative("x").path_parts() == ("initiatives", "x")
