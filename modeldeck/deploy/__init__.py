"""
Model deployment pipeline.

Deploys and deletes Cube.js models by rewriting the ConfigMap document and
driving the workload through apply, restart, mount and rollout steps. Each
run is journaled so a partial failure can be resumed.
"""

from .coordinator import (
    DeploymentCoordinator,
    OperationResult,
    StepResult,
    DEPLOY,
    DELETE,
)
from .journal import Journal, JournalEntry

__all__ = [
    # Coordinator
    "DeploymentCoordinator",
    "OperationResult",
    "StepResult",
    "DEPLOY",
    "DELETE",
    # Journal
    "Journal",
    "JournalEntry",
]
