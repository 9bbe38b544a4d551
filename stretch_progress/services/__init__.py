"""
Service Layer Package

- ServiceContainer: wires store, event bus and clock into the engines
- ProgressionService: session logging, claims, flex saves, startup
"""

from stretch_progress.services.container import ServiceContainer, get_container, init_container
from stretch_progress.services.progression_service import ProgressionService

__all__ = [
    "ServiceContainer",
    "get_container",
    "init_container",
    "ProgressionService",
]
