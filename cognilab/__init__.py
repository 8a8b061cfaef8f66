# CogniLab/cognilab/__init__.py
"""
CogniLab circuit core package.
Lab circuit composition, save reconciliation against the storage layer,
scoring, and the editor command layer used by the editor service.
"""
import logging

logger = logging.getLogger(__name__)

__version__ = "1.0.0"
