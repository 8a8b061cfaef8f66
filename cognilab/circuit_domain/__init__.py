# CogniLab/cognilab/circuit_domain/__init__.py
"""
Circuit Domain Models.
This sub-package contains the placed equipment, the wires between them,
and the Composition aggregate that keeps the two consistent.
"""
from .identity import Identity, LocalId, PersistedId, identity_to_dict, identity_from_dict
from .components import EquipmentType, PlacementInstance, WireConnection, ExperimentStep
from .errors import CompositionError, UnknownEquipmentType, NotFound, UnknownEndpoint, SelfConnection
from .catalog import EquipmentCatalog
from .circuit import Composition, CompositionSnapshot
from .steps import StepPlan, StepProgress

__all__ = [
    "Identity", "LocalId", "PersistedId", "identity_to_dict", "identity_from_dict",
    "EquipmentType", "PlacementInstance", "WireConnection", "ExperimentStep",
    "CompositionError", "UnknownEquipmentType", "NotFound", "UnknownEndpoint", "SelfConnection",
    "EquipmentCatalog", "Composition", "CompositionSnapshot",
    "StepPlan", "StepProgress",
]
