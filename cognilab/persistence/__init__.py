# CogniLab/cognilab/persistence/__init__.py
"""
Storage collaborators.
Clients for the external storage layer that the save protocol writes to.
"""
from .store import LabStore, InMemoryLabStore, PersistenceError
from .http_store import HttpLabStore

__all__ = ["LabStore", "InMemoryLabStore", "HttpLabStore", "PersistenceError"]
