# CogniLab/cognilab/session/__init__.py
"""
Editing sessions.
Owns one lab's composition and steps, and runs the save reconciliation protocol.
"""
from .reconciler import (
    SaveReconciler, SaveStepError, ReconciledSave, IdentityCountMismatch,
    STEP_PLACEMENTS, STEP_CONNECTIONS, STEP_STEPS,
)
from .manager import (
    LabSession, SaveInProgress, SaveNotAllowed, MODE_AUTHOR, MODE_PRACTICE, SESSION_MODES,
)

__all__ = [
    "SaveReconciler", "SaveStepError", "ReconciledSave", "IdentityCountMismatch",
    "STEP_PLACEMENTS", "STEP_CONNECTIONS", "STEP_STEPS",
    "LabSession", "SaveInProgress", "SaveNotAllowed", "MODE_AUTHOR", "MODE_PRACTICE", "SESSION_MODES",
]
