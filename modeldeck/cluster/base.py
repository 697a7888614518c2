"""
Interfaces the deployment coordinator drives.

The coordinator only sees these; the kubectl / psql implementations live in
``kubectl.py`` and ``sql.py``, and tests substitute in-memory fakes.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List


class ConfigStore(ABC):
    """Pushes the persisted ConfigMap document into the cluster."""

    @abstractmethod
    async def apply(self, document: Path) -> str:
        """Apply the document, returning the tool's output."""


class Workload(ABC):
    """The deployment that serves the models."""

    @abstractmethod
    async def restart(self) -> str:
        """Trigger a rolling restart."""

    @abstractmethod
    async def describe(self) -> Dict[str, Any]:
        """Return the workload's current descriptor."""

    @abstractmethod
    async def volume_mounts(self) -> List[Dict[str, Any]]:
        """Volume mounts of the model-serving container."""

    @abstractmethod
    async def has_mount(self, model_name: str) -> bool:
        """Whether the model's file is mounted into the container."""

    @abstractmethod
    async def add_mount(self, model_name: str) -> str:
        """Mount the model's ConfigMap key into the container."""

    @abstractmethod
    async def remove_mount(self, model_name: str) -> str:
        """Remove the model's mount, matched by mount path."""

    @abstractmethod
    async def rollout_status(self, timeout: int) -> str:
        """Block until the rollout finishes or ``timeout`` seconds pass."""

    @abstractmethod
    async def logs(self, tail: int) -> str:
        """Return the last ``tail`` log lines."""


class ConnectivityProbe(ABC):
    """Checks that the deployed engine answers queries."""

    @abstractmethod
    async def check(self) -> str:
        """Run the probe, returning its output."""
