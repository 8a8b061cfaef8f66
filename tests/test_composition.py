"""Tests for the Composition editor."""

import pytest

from cognilab.circuit_domain import (
    LocalId, PersistedId, NotFound, SelfConnection, UnknownEndpoint, UnknownEquipmentType,
)
from cognilab.circuit_domain.components import DEFAULT_SOURCE_TERMINAL, DEFAULT_TARGET_TERMINAL, DEFAULT_WIRE_COLOR


def test_add_placement_copies_template(composition, catalog):
    placement = composition.add_placement("power-supply", 10, 20)

    template = catalog.get("power-supply").default_configuration
    assert placement.configuration == template
    placement.configuration["limits"]["current"] = 2.5
    assert template["limits"]["current"] == 1.0

    other = composition.add_placement("power-supply", 0, 0)
    assert other.configuration["limits"]["current"] == 1.0


def test_add_placement_assigns_local_identity_and_depth(composition):
    first = composition.add_placement("resistor", 0, 0)
    second = composition.add_placement("led", 5, 5)

    assert isinstance(first.identity, LocalId)
    assert first.identity != second.identity
    assert (first.depth_order, second.depth_order) == (0, 1)
    assert second.equipment_name == "LED"
    assert [p.identity for p in composition.placements] == [first.identity, second.identity]


def test_add_placement_unknown_type_leaves_state_unchanged(composition):
    with pytest.raises(UnknownEquipmentType):
        composition.add_placement("capacitor", 0, 0)
    assert composition.placements == []


def test_move_and_configure(composition):
    placement = composition.add_placement("resistor", 0, 0)
    composition.move_placement(placement.identity, 3.5, 4)
    new_config = {"resistance": 220}
    composition.configure_placement(placement.identity, new_config)
    new_config["resistance"] = 1

    assert (placement.x, placement.y) == (3.5, 4.0)
    assert placement.configuration == {"resistance": 220}
    assert placement.equipment_type_id == "resistor"


def test_configure_replaces_wholesale(composition):
    placement = composition.add_placement("power-supply", 0, 0)
    composition.configure_placement(placement.identity, {"voltage": 9.0})
    assert placement.configuration == {"voltage": 9.0}


def test_operations_on_missing_placement_raise_not_found(composition):
    missing = LocalId("missing")
    with pytest.raises(NotFound):
        composition.move_placement(missing, 0, 0)
    with pytest.raises(NotFound):
        composition.configure_placement(missing, {})
    with pytest.raises(NotFound):
        composition.remove_placement(missing)
    with pytest.raises(NotFound):
        composition.disconnect(missing)


def test_remove_placement_cascades_connections(composition):
    a = composition.add_placement("power-supply", 0, 0)
    b = composition.add_placement("resistor", 1, 0)
    c = composition.add_placement("led", 2, 0)
    composition.connect(a.identity, b.identity)
    composition.connect(b.identity, c.identity)
    kept = composition.connect(a.identity, c.identity)

    removed, removed_count = composition.remove_placement(b.identity)

    assert removed.identity == b.identity
    assert removed_count == 2
    assert not composition.has_placement(b.identity)
    assert composition.connections == [kept]
    assert all(not conn.touches(b.identity) for conn in composition.connections)


def test_connections_for_lists_attached_wires(composition):
    a = composition.add_placement("power-supply", 0, 0)
    b = composition.add_placement("resistor", 1, 0)
    c = composition.add_placement("led", 2, 0)
    ab = composition.connect(a.identity, b.identity)
    ca = composition.connect(c.identity, a.identity)

    assert composition.connections_for(a.identity) == [ab, ca]
    assert composition.connections_for(b.identity) == [ab]
    composition.remove_placement(c.identity)
    assert composition.connections_for(a.identity) == [ab]


def test_connect_defaults(composition):
    a = composition.add_placement("power-supply", 0, 0)
    b = composition.add_placement("led", 1, 0)
    connection = composition.connect(a.identity, b.identity)

    assert isinstance(connection.identity, LocalId)
    assert connection.source_terminal is None
    assert connection.effective_source_terminal == DEFAULT_SOURCE_TERMINAL
    assert connection.effective_target_terminal == DEFAULT_TARGET_TERMINAL
    assert connection.color == DEFAULT_WIRE_COLOR


def test_connect_uses_configured_color(catalog):
    from cognilab.circuit_domain import Composition

    composition = Composition(catalog, default_wire_color="#ff0000")
    a = composition.add_placement("power-supply", 0, 0)
    b = composition.add_placement("led", 1, 0)
    assert composition.connect(a.identity, b.identity).color == "#ff0000"
    assert composition.connect(a.identity, b.identity, color="#000000").color == "#000000"


def test_connect_to_self_rejected(composition):
    a = composition.add_placement("resistor", 0, 0)
    with pytest.raises(SelfConnection):
        composition.connect(a.identity, a.identity)
    assert composition.connections == []


def test_connect_to_unknown_endpoint_rejected(composition):
    a = composition.add_placement("resistor", 0, 0)
    with pytest.raises(UnknownEndpoint) as exc_info:
        composition.connect(a.identity, PersistedId("nowhere"))
    assert exc_info.value.identity == PersistedId("nowhere")
    assert composition.connections == []


def test_disconnect(composition):
    a = composition.add_placement("power-supply", 0, 0)
    b = composition.add_placement("led", 1, 0)
    connection = composition.connect(a.identity, b.identity)
    composition.disconnect(connection.identity)
    assert composition.connections == []


def test_snapshot_is_independent(composition):
    a = composition.add_placement("resistor", 0, 0)
    snapshot = composition.snapshot()
    composition.move_placement(a.identity, 50, 50)
    composition.add_placement("led", 0, 0)

    assert len(snapshot.placements) == 1
    assert snapshot.placements[0].x == 0.0


def test_adopt_identities_rewrites_placements_and_connections(composition):
    a = composition.add_placement("power-supply", 0, 0)
    b = composition.add_placement("led", 1, 0)
    late = composition.add_placement("resistor", 2, 0)
    wire = composition.connect(a.identity, b.identity)
    late_wire = composition.connect(b.identity, late.identity)
    old_a, old_b = a.identity, b.identity

    composition.adopt_identities(
        {old_a: PersistedId("p1"), old_b: PersistedId("p2")},
        {wire.identity: PersistedId("w1")},
    )

    assert [p.identity for p in composition.placements] == [PersistedId("p1"), PersistedId("p2"), late.identity]
    first, second = composition.connections
    assert first.identity == PersistedId("w1")
    assert (first.source_placement_id, first.target_placement_id) == (PersistedId("p1"), PersistedId("p2"))
    assert second.identity == late_wire.identity
    assert (second.source_placement_id, second.target_placement_id) == (PersistedId("p2"), late.identity)
    assert composition.get_placement(PersistedId("p1")).equipment_type_id == "power-supply"


def test_state_description(composition):
    assert composition.get_state_description() == "【当前电路状态】: 电路为空。"
    composition.add_placement("led", 0, 0)
    description = composition.get_state_description()
    assert "设备 (1)" in description
    assert "LED" in description
