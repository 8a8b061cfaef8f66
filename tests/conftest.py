"""Shared fixtures for CogniLab tests."""

import pytest

from cognilab.circuit_domain import EquipmentCatalog, EquipmentType, Composition
from cognilab.persistence import InMemoryLabStore
from cognilab.session import LabSession
from cognilab.utils.config_loader import ConfigLoader


@pytest.fixture(autouse=True)
def reset_config_loader():
    """Every test starts without a cached ConfigLoader singleton."""
    ConfigLoader.reset()
    yield
    ConfigLoader.reset()


@pytest.fixture
def catalog() -> EquipmentCatalog:
    return EquipmentCatalog([
        EquipmentType("power-supply", "DC Power Supply", "source", {"voltage": 5.0, "limits": {"current": 1.0}}),
        EquipmentType("resistor", "Resistor", "passive", {"resistance": 1000}),
        EquipmentType("led", "LED", "output", {"color": "red"}),
    ])


@pytest.fixture
def composition(catalog) -> Composition:
    return Composition(catalog)


@pytest.fixture
def store() -> InMemoryLabStore:
    return InMemoryLabStore()


@pytest.fixture
def session(catalog, store) -> LabSession:
    return LabSession("lab-1", catalog, store)
