"""
kubectl-backed ConfigStore and Workload.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import ClusterConfig
from ..errors import ModelDeckError
from .base import ConfigStore, Workload
from .runner import CommandRunner

logger = logging.getLogger(__name__)

# Extra seconds the runner waits past kubectl's own --timeout
ROLLOUT_GRACE = 15


class KubectlConfigStore(ConfigStore):
    """Applies the ConfigMap document with ``kubectl apply``."""

    def __init__(self, cluster: ClusterConfig, runner: Optional[CommandRunner] = None):
        self.cluster = cluster
        self.runner = runner or CommandRunner(cluster.command_timeout)

    async def apply(self, document: Path) -> str:
        result = await self.runner.run(
            [self.cluster.kubectl, "apply", "-f", str(document)],
            "Applying ConfigMap to Kubernetes",
        )
        return result.stdout


class KubectlWorkload(Workload):
    """
    The Cube.js deployment, driven through kubectl.

    Mounts are identified by their ``mountPath``; removal uses a
    strategic-merge delete keyed on that path so a concurrent change to the
    mount list cannot shift which entry is removed.
    """

    def __init__(self, cluster: ClusterConfig, runner: Optional[CommandRunner] = None):
        self.cluster = cluster
        self.runner = runner or CommandRunner(cluster.command_timeout)

    def _kubectl(self, *args: str) -> List[str]:
        return [self.cluster.kubectl, *args]

    @property
    def _target(self) -> str:
        return f"deployment/{self.cluster.deployment}"

    async def restart(self) -> str:
        result = await self.runner.run(
            self._kubectl("rollout", "restart", self._target, "-n", self.cluster.namespace),
            f"Restarting {self.cluster.deployment} deployment",
        )
        return result.stdout

    async def describe(self) -> Dict[str, Any]:
        result = await self.runner.run(
            self._kubectl(
                "get", "deployment", self.cluster.deployment,
                "-n", self.cluster.namespace, "-o", "json",
            ),
            "Getting deployment configuration",
        )
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ModelDeckError(
                f"kubectl returned an unreadable deployment descriptor: {e}",
                code="BAD_DESCRIPTOR",
            ) from e

    def _container(self, descriptor: Dict[str, Any]) -> Dict[str, Any]:
        containers = (
            descriptor.get("spec", {})
            .get("template", {})
            .get("spec", {})
            .get("containers", [])
        )
        index = self.cluster.container_index
        if index >= len(containers):
            raise ModelDeckError(
                f"Deployment {self.cluster.deployment} has no container at index {index}",
                code="BAD_DESCRIPTOR",
            )
        return containers[index]

    async def volume_mounts(self) -> List[Dict[str, Any]]:
        descriptor = await self.describe()
        return self._container(descriptor).get("volumeMounts") or []

    async def has_mount(self, model_name: str) -> bool:
        path = self.cluster.mount_path(model_name)
        mounts = await self.volume_mounts()
        return any(mount.get("mountPath") == path for mount in mounts)

    async def add_mount(self, model_name: str) -> str:
        patch = [{
            "op": "add",
            "path": f"/spec/template/spec/containers/{self.cluster.container_index}/volumeMounts/-",
            "value": {
                "mountPath": self.cluster.mount_path(model_name),
                "name": self.cluster.volume_name,
                "subPath": self.cluster.file_name(model_name),
            },
        }]
        result = await self.runner.run(
            self._kubectl(
                "patch", "deployment", self.cluster.deployment,
                "-n", self.cluster.namespace,
                "--type=json", "-p", json.dumps(patch),
            ),
            f"Adding volume mount for {self.cluster.file_name(model_name)}",
        )
        return result.stdout

    async def remove_mount(self, model_name: str) -> str:
        container = self._container(await self.describe())
        patch = {
            "spec": {"template": {"spec": {"containers": [{
                "name": container.get("name"),
                "volumeMounts": [{
                    "mountPath": self.cluster.mount_path(model_name),
                    "$patch": "delete",
                }],
            }]}}}
        }
        result = await self.runner.run(
            self._kubectl(
                "patch", "deployment", self.cluster.deployment,
                "-n", self.cluster.namespace,
                "--type=strategic", "-p", json.dumps(patch),
            ),
            f"Removing volume mount for {self.cluster.file_name(model_name)}",
        )
        return result.stdout

    async def rollout_status(self, timeout: int) -> str:
        result = await self.runner.run(
            self._kubectl(
                "rollout", "status", self._target,
                "-n", self.cluster.namespace, f"--timeout={timeout}s",
            ),
            "Waiting for deployment to be ready",
            timeout=timeout + ROLLOUT_GRACE,
        )
        return result.stdout

    async def logs(self, tail: int) -> str:
        result = await self.runner.run(
            self._kubectl("logs", "-n", self.cluster.namespace, self._target, f"--tail={tail}"),
            f"Getting {self.cluster.deployment} logs",
        )
        return result.stdout
