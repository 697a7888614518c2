"""
Model deployment coordinator.

Keeps the model set in the ConfigMap document and walks the cluster through
the update:

    deploy:  persist -> apply -> restart -> mount (if new) -> status
    delete:  persist -> apply -> unmount (if mounted) -> restart

Steps run strictly in order. A failing step stops the pipeline without
rolling back earlier ones; the journal keeps the last completed step so
``resume()`` can pick up from there. The rollout wait is the only step whose
failure is reported without failing the operation.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..cluster import (
    ConfigStore,
    ConnectivityProbe,
    KubectlConfigStore,
    KubectlWorkload,
    PsqlProbe,
    Workload,
)
from ..cluster.runner import CommandRunner
from ..config import Config
from ..errors import (
    ExternalCommandError,
    ModelDeckError,
    ModelNotFoundError,
    PendingOperationError,
)
from ..store import ModelStore, check_model_name
from ..validator import validate_model
from .journal import Journal, JournalEntry

logger = logging.getLogger(__name__)

DEPLOY = "deploy"
DELETE = "delete"

# Internal steps are journaled but not reported to callers
PERSIST = "persist"


@dataclass
class StepResult:
    """Output of one executed external step."""
    step: str
    output: str
    ok: bool = True

    def to_dict(self) -> dict:
        return {"step": self.step, "output": self.output, "ok": self.ok}


@dataclass
class OperationResult:
    """Outcome of a deploy, delete or resume."""
    operation: str
    model_name: str
    steps: List[StepResult] = field(default_factory=list)
    rollout_ready: Optional[bool] = None
    resumed: bool = False

    @property
    def success(self) -> bool:
        return all(s.ok for s in self.steps if s.step != "status")

    @property
    def step_names(self) -> List[str]:
        return [s.step for s in self.steps]

    @property
    def message(self) -> str:
        if self.operation == DELETE:
            return f"Model {self.model_name} deleted successfully"
        if self.rollout_ready is False:
            return "Deployment applied; rollout did not become ready in time"
        return "Deployment successful"

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.message,
            "operation": self.operation,
            "model": self.model_name,
            "steps": [s.to_dict() for s in self.steps],
            "rollout_ready": self.rollout_ready,
            "resumed": self.resumed,
        }


@dataclass
class _Step:
    name: str
    action: Callable[[], Awaitable[Optional[str]]]
    fatal: bool = True


class DeploymentCoordinator:
    """
    Drives model deploys and deletes against the cluster.

    Example:
        >>> coordinator = DeploymentCoordinator.from_config(get_config())
        >>> result = await coordinator.deploy("Orders", source)
        >>> result.step_names
        ['apply', 'restart', 'mount', 'status']
    """

    def __init__(
        self,
        config: Config,
        store: ModelStore,
        config_store: ConfigStore,
        workload: Workload,
        probe: Optional[ConnectivityProbe] = None,
        journal: Optional[Journal] = None,
    ):
        self.config = config
        self.store = store
        self.config_store = config_store
        self.workload = workload
        self.probe = probe
        self.journal = journal or Journal(config.journal_path)

        # Serializes deploy / delete / resume within this process
        self._lock = asyncio.Lock()

        self.models: Dict[str, str] = self.store.load()
        logger.info(f"Loaded {len(self.models)} models from ConfigMap")

    @classmethod
    def from_config(cls, config: Config) -> "DeploymentCoordinator":
        runner = CommandRunner(config.cluster.command_timeout)
        return cls(
            config=config,
            store=ModelStore.from_config(config),
            config_store=KubectlConfigStore(config.cluster, runner),
            workload=KubectlWorkload(config.cluster, runner),
            probe=PsqlProbe(config.sql, runner, timeout=config.cluster.command_timeout),
        )

    # ==================== Reads ====================

    def reload(self) -> Dict[str, str]:
        self.models = self.store.load()
        return self.models

    def list_models(self) -> Dict[str, str]:
        """All models, read from the persisted document."""
        return dict(self.reload())

    def get_model(self, name: str) -> str:
        models = self.reload()
        if name not in models:
            raise ModelNotFoundError(name)
        return models[name]

    def validate(self, text: str) -> str:
        validate_model(text)
        return "Model is valid"

    def pending(self) -> Optional[JournalEntry]:
        """The unfinished operation recorded in the journal, if any."""
        return self.journal.load()

    # ==================== Mutations ====================

    async def deploy(self, name: str, text: str) -> OperationResult:
        check_model_name(name)
        if self.config.validate_on_deploy:
            validate_model(text)

        async with self._lock:
            self._check_no_pending()
            self.reload()

            entry = self.journal.begin(DEPLOY, name, text=text)
            result = OperationResult(operation=DEPLOY, model_name=name)
            steps = [_Step(PERSIST, self._persist_step(entry))] + self._deploy_steps(name, result)
            await self._run(entry, steps, result)
            return result

    async def delete(self, name: str) -> OperationResult:
        check_model_name(name)

        async with self._lock:
            self._check_no_pending()
            self.reload()

            entry = self.journal.begin(DELETE, name)
            result = OperationResult(operation=DELETE, model_name=name)
            steps = [_Step(PERSIST, self._persist_step(entry))] + self._delete_steps(name)
            await self._run(entry, steps, result)
            return result

    def _check_no_pending(self) -> None:
        entry = self.journal.load()
        if entry is not None:
            raise PendingOperationError(entry.operation, entry.model_name)

    async def resume(self) -> Optional[OperationResult]:
        """Finish the operation left in the journal, if there is one."""
        async with self._lock:
            entry = self.journal.load()
            if entry is None:
                return None

            logger.info(
                f"Resuming {entry.operation} {entry.model_name} after "
                f"{entry.last_completed or 'start'}"
            )
            result = OperationResult(
                operation=entry.operation,
                model_name=entry.model_name,
                resumed=True,
            )

            if entry.operation == DEPLOY:
                steps = self._deploy_steps(entry.model_name, result)
            elif entry.operation == DELETE:
                steps = self._delete_steps(entry.model_name)
            else:
                raise ModelDeckError(
                    f"Journal holds unknown operation '{entry.operation}'",
                    code="BAD_JOURNAL",
                )

            if PERSIST not in entry.completed:
                steps.insert(0, _Step(PERSIST, self._persist_step(entry)))

            await self._run(entry, steps, result)
            return result

    def _persist_step(self, entry: JournalEntry) -> Callable[[], Awaitable[Optional[str]]]:
        async def persist() -> Optional[str]:
            models = self.reload()
            if entry.operation == DELETE:
                if models.pop(entry.model_name, None) is None:
                    logger.info(f"Model {entry.model_name} not in ConfigMap, delete is a no-op locally")
            elif entry.text is not None:
                models[entry.model_name] = entry.text
            elif entry.model_name not in models:
                raise ModelNotFoundError(entry.model_name)
            self.store.save(models)
            return None
        return persist

    def _deploy_steps(self, name: str, result: OperationResult) -> List[_Step]:
        async def apply() -> str:
            return await self.config_store.apply(self.store.path)

        async def mount() -> Optional[str]:
            if await self.workload.has_mount(name):
                logger.info(f"Volume mount for {name} already present")
                return None
            return await self.workload.add_mount(name)

        async def status() -> str:
            try:
                output = await self.workload.rollout_status(self.config.cluster.rollout_timeout)
            except ExternalCommandError:
                result.rollout_ready = False
                raise
            result.rollout_ready = True
            return output

        return [
            _Step("apply", apply),
            _Step("restart", self.workload.restart),
            _Step("mount", mount),
            _Step("status", status, fatal=False),
        ]

    def _delete_steps(self, name: str) -> List[_Step]:
        async def apply() -> str:
            return await self.config_store.apply(self.store.path)

        async def unmount() -> Optional[str]:
            if not await self.workload.has_mount(name):
                logger.info(f"No volume mount for {name}, nothing to remove")
                return None
            return await self.workload.remove_mount(name)

        return [
            _Step("apply", apply),
            _Step("unmount", unmount),
            _Step("restart", self.workload.restart),
        ]

    async def _run(self, entry: JournalEntry, steps: List[_Step], result: OperationResult) -> None:
        for step in steps:
            if step.name in entry.completed:
                continue

            try:
                output = await step.action()
            except ExternalCommandError as e:
                if step.fatal:
                    self.journal.fail(entry, step.name, e.message)
                    raise
                logger.warning(f"{entry.operation} {entry.model_name}: {step.name} failed: {e.message}")
                result.steps.append(StepResult(step.name, e.message, ok=False))
            except ModelDeckError as e:
                self.journal.fail(entry, step.name, e.message)
                raise
            else:
                if output is not None:
                    result.steps.append(StepResult(step.name, output))

            self.journal.mark(entry, step.name)

        self.journal.clear()
        logger.info(f"{entry.operation} {entry.model_name} finished: {result.step_names}")

    # ==================== Cluster passthroughs ====================

    async def cluster_status(self) -> Dict[str, Any]:
        descriptor = await self.workload.describe()
        metadata = descriptor.get("metadata", {})
        status = descriptor.get("status", {})
        return {
            "name": metadata.get("name"),
            "namespace": metadata.get("namespace"),
            "replicas": status.get("replicas", 0),
            "readyReplicas": status.get("readyReplicas", 0),
            "conditions": status.get("conditions", []),
        }

    async def cluster_logs(self, tail: Optional[int] = None) -> List[str]:
        if tail is None:
            tail = self.config.cluster.log_tail
        output = await self.workload.logs(tail)
        return output.splitlines()

    async def test_connection(self) -> str:
        if self.probe is None:
            raise ModelDeckError("No connectivity probe configured", code="NO_PROBE")
        return await self.probe.check()
