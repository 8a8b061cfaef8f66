"""Tests for placement / connection identities."""

import pytest

from cognilab.circuit_domain.identity import LocalId, PersistedId, identity_from_dict, identity_to_dict


def test_local_and_persisted_with_same_value_are_distinct():
    assert LocalId("abc") != PersistedId("abc")
    assert len({LocalId("abc"), PersistedId("abc")}) == 2


def test_identities_compare_by_value():
    assert LocalId("t1") == LocalId("t1")
    assert PersistedId("p1") == PersistedId("p1")
    assert hash(PersistedId("p1")) == hash(PersistedId("p1"))


def test_is_persisted():
    assert not LocalId.new().is_persisted
    assert PersistedId("p1").is_persisted


def test_new_local_ids_are_unique():
    assert len({LocalId.new() for _ in range(100)}) == 100


def test_identities_are_immutable():
    identity = PersistedId("p1")
    with pytest.raises(AttributeError):
        identity.value = "p2"


def test_wire_format():
    assert identity_to_dict(LocalId("t1")) == {"kind": "local", "value": "t1"}
    assert identity_from_dict({"kind": "persisted", "value": "p9"}) == PersistedId("p9")


@pytest.mark.parametrize("raw", [
    {"kind": "temp", "value": "x"},
    {"kind": "local", "value": ""},
    "p1",
])
def test_identity_from_dict_rejects_malformed_input(raw):
    with pytest.raises(ValueError):
        identity_from_dict(raw)
