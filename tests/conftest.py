"""
Shared fixtures: in-memory stand-ins for the cluster.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import pytest

from modeldeck.cluster import ConfigStore, ConnectivityProbe, Workload
from modeldeck.config import Config, reset_config
from modeldeck.deploy import DeploymentCoordinator
from modeldeck.errors import ExternalCommandError
from modeldeck.store import ModelStore

WIDGET = "cube(`Widget`,{sql:`SELECT 1`,dimensions:{},measures:{count:{type:`count`}}})"

ORDERS = """cube(`Orders`, {
  sql: `SELECT * FROM public.orders`,

  measures: {
    count: {
      type: `count`
    },
    total: {
      sql: `${CUBE}.total_amount`,
      type: `sum`
    }
  }
});
"""


class FakeConfigStore(ConfigStore):
    def __init__(self):
        self.applied: List[Path] = []
        self.fail_with: Optional[str] = None

    async def apply(self, document: Path) -> str:
        if self.fail_with:
            raise ExternalCommandError(["kubectl", "apply", "-f", str(document)], 1, self.fail_with)
        self.applied.append(document)
        return "configmap/cube-models configured\n"


class FakeWorkload(Workload):
    def __init__(self, mount_dir: str = "/cube/conf/model"):
        self.mount_dir = mount_dir
        self.mounted: Set[str] = set()
        self.calls: List[str] = []
        self.rollout_fails = False
        self.fail_on: Set[str] = set()
        self.log_text = "line one\nline two\n"
        self.last_tail: Optional[int] = None
        self.descriptor: Dict[str, Any] = {
            "metadata": {"name": "cube", "namespace": "stcs"},
            "status": {
                "replicas": 1,
                "readyReplicas": 1,
                "conditions": [{"type": "Available", "status": "True"}],
            },
        }

    def _call(self, name: str):
        self.calls.append(name)
        if name in self.fail_on:
            raise ExternalCommandError(["kubectl", name], 1, f"error: {name} failed")

    async def restart(self) -> str:
        self._call("restart")
        return "deployment.apps/cube restarted\n"

    async def describe(self) -> Dict[str, Any]:
        self._call("describe")
        return self.descriptor

    async def volume_mounts(self) -> List[Dict[str, Any]]:
        return [{"mountPath": f"{self.mount_dir}/{name}.js"} for name in sorted(self.mounted)]

    async def has_mount(self, model_name: str) -> bool:
        self._call("has_mount")
        return model_name in self.mounted

    async def add_mount(self, model_name: str) -> str:
        self._call("add_mount")
        self.mounted.add(model_name)
        return "deployment.apps/cube patched\n"

    async def remove_mount(self, model_name: str) -> str:
        self._call("remove_mount")
        self.mounted.discard(model_name)
        return "deployment.apps/cube patched\n"

    async def rollout_status(self, timeout: int) -> str:
        self._call("rollout_status")
        if self.rollout_fails:
            raise ExternalCommandError(
                ["kubectl", "rollout", "status"], 1,
                "error: timed out waiting for the condition",
            )
        return 'deployment "cube" successfully rolled out\n'

    async def logs(self, tail: int) -> str:
        self._call("logs")
        self.last_tail = tail
        return self.log_text


class FakeProbe(ConnectivityProbe):
    def __init__(self):
        self.fail_with: Optional[str] = None

    async def check(self) -> str:
        if self.fail_with:
            raise ExternalCommandError(["psql"], 2, self.fail_with)
        return "  status   \n-----------\n Connected\n(1 row)\n"


@pytest.fixture(autouse=True)
def _reset_globals():
    yield
    reset_config()


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(data_dir=tmp_path)


@pytest.fixture
def config_store() -> FakeConfigStore:
    return FakeConfigStore()


@pytest.fixture
def workload() -> FakeWorkload:
    return FakeWorkload()


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def coordinator(config, config_store, workload, probe) -> DeploymentCoordinator:
    return DeploymentCoordinator(
        config=config,
        store=ModelStore.from_config(config),
        config_store=config_store,
        workload=workload,
        probe=probe,
    )
