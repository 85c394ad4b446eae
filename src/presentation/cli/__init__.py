"""
CLI Input Collection - User interaction layer.

This module provides classes for collecting user input from the command line,
keeping user interaction separate from business logic.
"""

from .input_collectors import InputCollector, input_collector

__all__ = [
    "InputCollector",
    "input_collector",
]
