"""Tests for the save reconciliation protocol."""

import pytest

from cognilab.circuit_domain import LocalId, PersistedId, PlacementInstance, WireConnection
from cognilab.circuit_domain.components import ExperimentStep
from cognilab.persistence import PersistenceError
from cognilab.persistence.store import LabStore
from cognilab.session import (
    SaveReconciler, SaveStepError, IdentityCountMismatch,
    STEP_PLACEMENTS, STEP_CONNECTIONS, STEP_STEPS,
)
from cognilab.session.reconciler import build_identity_map


class ScriptedStore(LabStore):
    """Returns preset ids and can be told to fail at a given step."""

    def __init__(self, placement_ids=None, connection_ids=None, fail_at=None):
        self.placement_ids = placement_ids
        self.connection_ids = connection_ids
        self.fail_at = fail_at
        self.calls = []
        self.received = {}

    async def persist_placements(self, lab_id, placements):
        self.calls.append(STEP_PLACEMENTS)
        self.received[STEP_PLACEMENTS] = list(placements)
        if self.fail_at == STEP_PLACEMENTS:
            raise PersistenceError("placements down")
        if self.placement_ids is not None:
            return self.placement_ids
        return [f"p{i + 1}" for i in range(len(placements))]

    async def persist_connections(self, lab_id, connections):
        self.calls.append(STEP_CONNECTIONS)
        self.received[STEP_CONNECTIONS] = list(connections)
        if self.fail_at == STEP_CONNECTIONS:
            raise PersistenceError("connections down")
        return self.connection_ids

    async def persist_steps(self, lab_id, steps):
        self.calls.append(STEP_STEPS)
        self.received[STEP_STEPS] = list(steps)
        if self.fail_at == STEP_STEPS:
            raise PersistenceError("steps down")

    async def load_lab(self, lab_id):
        return {"labEquipments": [], "wireConnections": [], "experimentSteps": []}


def _placements(*tokens):
    return [PlacementInstance(LocalId(t), "resistor", i, 0, i) for i, t in enumerate(tokens)]


def _wire(token, source, target):
    return WireConnection(LocalId(token), LocalId(source), LocalId(target))


@pytest.mark.asyncio
async def test_round_trip_rewrites_temporary_ids():
    store = ScriptedStore()
    placements = _placements("temp-1", "temp-2", "temp-3")
    connections = [_wire("w-a", "temp-1", "temp-2"), _wire("w-b", "temp-2", "temp-3")]

    result = await SaveReconciler(store).reconcile("lab-1", placements, connections, [])

    assert [p.identity for p in result.placements] == [PersistedId("p1"), PersistedId("p2"), PersistedId("p3")]
    assert [(c.source_placement_id, c.target_placement_id) for c in result.connections] == [
        (PersistedId("p1"), PersistedId("p2")),
        (PersistedId("p2"), PersistedId("p3")),
    ]
    assert len(result.connections) == len(connections)
    assert result.identity_map[LocalId("temp-2")] == PersistedId("p2")
    assert store.calls == [STEP_PLACEMENTS, STEP_CONNECTIONS, STEP_STEPS]
    # connections are submitted already rewritten
    assert store.received[STEP_CONNECTIONS][0].source_placement_id == PersistedId("p1")


@pytest.mark.asyncio
async def test_empty_composition_still_saves_steps():
    store = ScriptedStore()
    steps = [ExperimentStep(1, "Connect the supply")]

    result = await SaveReconciler(store).reconcile("lab-1", [], [], steps)

    assert result.placements == [] and result.connections == []
    assert store.calls == [STEP_PLACEMENTS, STEP_CONNECTIONS, STEP_STEPS]
    assert store.received[STEP_STEPS][0].description == "Connect the supply"


@pytest.mark.asyncio
async def test_returned_count_mismatch_fails_placement_step():
    store = ScriptedStore(placement_ids=["p1", "p2"])

    with pytest.raises(SaveStepError) as exc_info:
        await SaveReconciler(store).reconcile("lab-1", _placements("t1", "t2", "t3"), [], [])

    assert exc_info.value.step == STEP_PLACEMENTS
    assert isinstance(exc_info.value.cause, IdentityCountMismatch)
    assert store.calls == [STEP_PLACEMENTS]


@pytest.mark.asyncio
async def test_placement_failure_stops_before_connections():
    store = ScriptedStore(fail_at=STEP_PLACEMENTS)

    with pytest.raises(SaveStepError) as exc_info:
        await SaveReconciler(store).reconcile("lab-1", _placements("t1"), [], [])

    assert exc_info.value.step == STEP_PLACEMENTS
    assert exc_info.value.identity_map == {}
    assert store.calls == [STEP_PLACEMENTS]


@pytest.mark.asyncio
async def test_connection_failure_reports_saved_placements():
    store = ScriptedStore(fail_at=STEP_CONNECTIONS)

    with pytest.raises(SaveStepError) as exc_info:
        await SaveReconciler(store).reconcile(
            "lab-1", _placements("t1", "t2"), [_wire("w", "t1", "t2")], [])

    error = exc_info.value
    assert error.step == STEP_CONNECTIONS
    assert error.completed_steps == [STEP_PLACEMENTS]
    assert error.identity_map == {LocalId("t1"): PersistedId("p1"), LocalId("t2"): PersistedId("p2")}
    assert isinstance(error.cause, PersistenceError)


@pytest.mark.asyncio
async def test_step_failure_is_tagged():
    store = ScriptedStore(fail_at=STEP_STEPS)

    with pytest.raises(SaveStepError) as exc_info:
        await SaveReconciler(store).reconcile("lab-1", _placements("t1"), [], [ExperimentStep(1, "x")])

    assert exc_info.value.step == STEP_STEPS
    assert exc_info.value.completed_steps == [STEP_PLACEMENTS, STEP_CONNECTIONS]


@pytest.mark.asyncio
async def test_connection_ids_adopted_only_when_counts_match():
    placements = _placements("t1", "t2")
    wires = [_wire("w1", "t1", "t2"), _wire("w2", "t2", "t1")]

    matched = await SaveReconciler(ScriptedStore(connection_ids=["c1", "c2"])).reconcile("lab", placements, wires, [])
    assert [c.identity for c in matched.connections] == [PersistedId("c1"), PersistedId("c2")]

    short = await SaveReconciler(ScriptedStore(connection_ids=["c1"])).reconcile("lab", placements, wires, [])
    assert [c.identity for c in short.connections] == [LocalId("w1"), LocalId("w2")]
    assert short.connection_identity_map == {}


def test_build_identity_map_is_positional():
    placements = _placements("a", "b")
    assert build_identity_map(placements, ["x", "y"]) == {LocalId("a"): PersistedId("x"), LocalId("b"): PersistedId("y")}
    with pytest.raises(IdentityCountMismatch):
        build_identity_map(placements, ["x"])


@pytest.mark.asyncio
async def test_unmapped_endpoint_keeps_its_identity():
    store = ScriptedStore()
    wires = [_wire("w", "t1", "ghost")]

    result = await SaveReconciler(store).reconcile("lab-1", _placements("t1"), wires, [])

    rewritten = result.connections[0]
    assert rewritten.source_placement_id == PersistedId("p1")
    assert rewritten.target_placement_id == LocalId("ghost")
    assert store.received[STEP_CONNECTIONS][0].target_placement_id == LocalId("ghost")
