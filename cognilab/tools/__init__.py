# CogniLab/cognilab/tools/__init__.py
"""
Editor commands that can be invoked by name from the editor service.
"""
from .base import register_command, collect_commands
from .executor import CommandExecutor

__all__ = ["register_command", "collect_commands", "CommandExecutor"]
