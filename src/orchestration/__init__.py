"""
Orchestration Layer - Application coordination and workflow management.

This layer coordinates all other layers: it owns the serialized command
path, the response watchers and the order lifecycle.
"""

from .command_queue import CommandQueue
from .config import ApplicationConfig
from .directory_watcher import DirectoryWatcher
from .orchestrator import ImagingOrderOrchestrator, create_orchestrator
from .response_scanner import ResponseScanner

__all__ = [
    "ApplicationConfig",
    "CommandQueue",
    "DirectoryWatcher",
    "ResponseScanner",
    "ImagingOrderOrchestrator",
    "create_orchestrator",
]
