# CogniLab/cognilab/utils/__init__.py
"""
Utility Functions and Configurations.
Provides logging setup and the YAML/.env configuration loader.
"""
from .logging_config import setup_logging, LOG_DIR
from .config_loader import ConfigLoader

__all__ = ["setup_logging", "LOG_DIR", "ConfigLoader"]
