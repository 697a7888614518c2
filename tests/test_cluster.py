"""
Tests for the kubectl / psql adapters and the command runner.
"""

import json
import sys
from pathlib import Path
from typing import List

import pytest

from modeldeck.cluster import (
    CommandResult,
    CommandRunner,
    KubectlConfigStore,
    KubectlWorkload,
    PsqlProbe,
)
from modeldeck.config import ClusterConfig, SQLConfig, SQL_PASSWORD_ENV
from modeldeck.errors import ExternalCommandError


class RecordingRunner(CommandRunner):
    """Records argv instead of running anything."""

    def __init__(self, stdout: str = ""):
        super().__init__()
        self.stdout = stdout
        self.calls: List[dict] = []

    async def run(self, argv, description="", timeout=None, env=None) -> CommandResult:
        self.calls.append({"argv": list(argv), "timeout": timeout, "env": env})
        return CommandResult(argv=list(argv), returncode=0, stdout=self.stdout, stderr="")

    @property
    def last_argv(self) -> List[str]:
        return self.calls[-1]["argv"]


def _descriptor(mount_paths: List[str], container_name: str = "cube") -> str:
    return json.dumps({
        "metadata": {"name": "cube", "namespace": "stcs"},
        "spec": {"template": {"spec": {"containers": [{
            "name": container_name,
            "volumeMounts": [
                {"name": "cube-models-volume", "mountPath": path, "subPath": path.rsplit("/", 1)[-1]}
                for path in mount_paths
            ],
        }]}}},
        "status": {"replicas": 1, "readyReplicas": 1},
    })


@pytest.fixture
def cluster() -> ClusterConfig:
    return ClusterConfig()


class TestKubectlConfigStore:

    @pytest.mark.asyncio
    async def test_apply(self, cluster):
        runner = RecordingRunner("configmap/cube-models configured\n")
        store = KubectlConfigStore(cluster, runner)

        output = await store.apply(Path("/tmp/cube-models.yaml"))

        assert runner.last_argv == ["kubectl", "apply", "-f", "/tmp/cube-models.yaml"]
        assert "configured" in output


class TestKubectlWorkload:

    @pytest.mark.asyncio
    async def test_restart(self, cluster):
        runner = RecordingRunner()
        await KubectlWorkload(cluster, runner).restart()
        assert runner.last_argv == ["kubectl", "rollout", "restart", "deployment/cube", "-n", "stcs"]

    @pytest.mark.asyncio
    async def test_describe(self, cluster):
        runner = RecordingRunner(_descriptor([]))
        descriptor = await KubectlWorkload(cluster, runner).describe()
        assert descriptor["metadata"]["name"] == "cube"
        assert runner.last_argv == ["kubectl", "get", "deployment", "cube", "-n", "stcs", "-o", "json"]

    @pytest.mark.asyncio
    async def test_has_mount_matches_exact_path(self, cluster):
        runner = RecordingRunner(_descriptor(["/cube/conf/model/Orders.js"]))
        workload = KubectlWorkload(cluster, runner)

        assert await workload.has_mount("Orders") is True
        assert await workload.has_mount("Order") is False
        assert await workload.has_mount("Widget") is False

    @pytest.mark.asyncio
    async def test_has_mount_without_mount_list(self, cluster):
        runner = RecordingRunner(json.dumps({
            "spec": {"template": {"spec": {"containers": [{"name": "cube"}]}}}
        }))
        assert await KubectlWorkload(cluster, runner).has_mount("Orders") is False

    @pytest.mark.asyncio
    async def test_add_mount_patch(self, cluster):
        runner = RecordingRunner()
        await KubectlWorkload(cluster, runner).add_mount("Widget")

        argv = runner.last_argv
        assert argv[:6] == ["kubectl", "patch", "deployment", "cube", "-n", "stcs"]
        assert "--type=json" in argv
        patch = json.loads(argv[argv.index("-p") + 1])
        assert patch == [{
            "op": "add",
            "path": "/spec/template/spec/containers/0/volumeMounts/-",
            "value": {
                "mountPath": "/cube/conf/model/Widget.js",
                "name": "cube-models-volume",
                "subPath": "Widget.js",
            },
        }]

    @pytest.mark.asyncio
    async def test_remove_mount_is_keyed_by_path(self, cluster):
        runner = RecordingRunner(_descriptor(
            ["/cube/conf/model/Orders.js", "/cube/conf/model/Widget.js"],
            container_name="cubejs",
        ))
        await KubectlWorkload(cluster, runner).remove_mount("Widget")

        argv = runner.last_argv
        assert "--type=strategic" in argv
        patch = json.loads(argv[argv.index("-p") + 1])
        container = patch["spec"]["template"]["spec"]["containers"][0]
        assert container["name"] == "cubejs"
        assert container["volumeMounts"] == [
            {"mountPath": "/cube/conf/model/Widget.js", "$patch": "delete"}
        ]
        assert "volumeMounts/" not in argv[argv.index("-p") + 1]

    @pytest.mark.asyncio
    async def test_rollout_status_timeout(self, cluster):
        runner = RecordingRunner()
        await KubectlWorkload(cluster, runner).rollout_status(60)

        assert runner.last_argv == [
            "kubectl", "rollout", "status", "deployment/cube", "-n", "stcs", "--timeout=60s",
        ]
        assert runner.calls[-1]["timeout"] > 60

    @pytest.mark.asyncio
    async def test_logs(self, cluster):
        runner = RecordingRunner("a\nb\n")
        output = await KubectlWorkload(cluster, runner).logs(50)
        assert runner.last_argv == ["kubectl", "logs", "-n", "stcs", "deployment/cube", "--tail=50"]
        assert output == "a\nb\n"

    @pytest.mark.asyncio
    async def test_custom_cluster_settings(self):
        cluster = ClusterConfig(namespace="analytics", deployment="semantic", kubectl="/usr/local/bin/kubectl")
        runner = RecordingRunner()
        await KubectlWorkload(cluster, runner).restart()
        assert runner.last_argv == [
            "/usr/local/bin/kubectl", "rollout", "restart", "deployment/semantic", "-n", "analytics",
        ]


class TestPsqlProbe:

    @pytest.mark.asyncio
    async def test_probe_command(self, monkeypatch):
        monkeypatch.delenv(SQL_PASSWORD_ENV, raising=False)
        runner = RecordingRunner(" Connected\n")
        sql = SQLConfig(host="10.0.0.5", password="secret")

        output = await PsqlProbe(sql, runner).check()

        call = runner.calls[-1]
        assert call["argv"] == [
            "psql", "-h", "10.0.0.5", "-p", "15432", "-U", "cube", "-d", "cube",
            "-c", "SELECT 'Connected' as status",
        ]
        assert call["env"] == {"PGPASSWORD": "secret"}
        assert "Connected" in output

    @pytest.mark.asyncio
    async def test_password_from_environment(self, monkeypatch):
        monkeypatch.setenv(SQL_PASSWORD_ENV, "from-env")
        runner = RecordingRunner()
        await PsqlProbe(SQLConfig(), runner).check()
        assert runner.calls[-1]["env"] == {"PGPASSWORD": "from-env"}

    @pytest.mark.asyncio
    async def test_no_password(self, monkeypatch):
        monkeypatch.delenv(SQL_PASSWORD_ENV, raising=False)
        runner = RecordingRunner()
        await PsqlProbe(SQLConfig(), runner).check()
        assert runner.calls[-1]["env"] is None


class TestCommandRunner:
    """Runs real subprocesses using the current interpreter."""

    @pytest.mark.asyncio
    async def test_captures_stdout(self):
        result = await CommandRunner().run([sys.executable, "-c", "print('hello')"])
        assert result.ok
        assert result.stdout.strip() == "hello"

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises_with_stderr(self):
        argv = [sys.executable, "-c", "import sys; sys.stderr.write('error: not found'); sys.exit(3)"]
        with pytest.raises(ExternalCommandError) as exc:
            await CommandRunner().run(argv)

        assert exc.value.returncode == 3
        assert exc.value.message == "error: not found"
        assert exc.value.timed_out is False

    @pytest.mark.asyncio
    async def test_timeout(self):
        argv = [sys.executable, "-c", "import time; time.sleep(10)"]
        with pytest.raises(ExternalCommandError) as exc:
            await CommandRunner().run(argv, timeout=0.5)
        assert exc.value.timed_out is True

    @pytest.mark.asyncio
    async def test_missing_executable(self):
        with pytest.raises(ExternalCommandError) as exc:
            await CommandRunner().run(["definitely-not-a-real-kubectl"])
        assert exc.value.returncode is None
        assert "command not found" in exc.value.message

    @pytest.mark.asyncio
    async def test_env_is_passed(self):
        argv = [sys.executable, "-c", "import os; print(os.environ['PGPASSWORD'])"]
        result = await CommandRunner().run(argv, env={"PGPASSWORD": "pw"})
        assert result.stdout.strip() == "pw"
