# CogniLab/cognilab/validation/__init__.py
"""
Circuit scoring.
Structural comparison of a student's composition against the instructor's reference.
"""
from .scoring import CheckResult, ValidationReport, validate_composition

__all__ = ["CheckResult", "ValidationReport", "validate_composition"]
