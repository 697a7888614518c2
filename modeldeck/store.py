"""
ConfigMap-backed model store.

The model set is persisted as a single Kubernetes ConfigMap document whose
``data`` map holds one ``<name><extension>`` key per model. The document is
always read and written whole.
"""

import logging
import os
import re
from pathlib import Path
from typing import Dict, Optional

import yaml

from .errors import InvalidModelNameError, ModelDeckError

logger = logging.getLogger(__name__)

MODEL_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")


def check_model_name(name: str) -> str:
    """Return ``name`` if it is usable as a ConfigMap key stem."""
    if not isinstance(name, str) or not MODEL_NAME_RE.match(name):
        raise InvalidModelNameError(str(name))
    return name


class _BlockDumper(yaml.SafeDumper):
    """Dumps multi-line model text as literal blocks."""


def _represent_str(dumper: yaml.SafeDumper, value: str):
    if "\n" in value:
        return dumper.represent_scalar("tag:yaml.org,2002:str", value, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", value)


_BlockDumper.add_representer(str, _represent_str)


class ModelStore:
    """
    Reads and writes the model set as a ConfigMap document.

    Example:
        >>> store = ModelStore(Path("cube-models.yaml"), namespace="stcs")
        >>> store.save({"Orders": "cube(`Orders`, {...})"})
        >>> store.load()
        {'Orders': 'cube(`Orders`, {...})'}
    """

    def __init__(
        self,
        path: Path,
        namespace: str = "stcs",
        configmap_name: str = "cube-models",
        extension: str = ".js",
    ):
        self.path = Path(path)
        self.namespace = namespace
        self.configmap_name = configmap_name
        self.extension = extension

    @classmethod
    def from_config(cls, config) -> "ModelStore":
        return cls(
            config.configmap_path,
            namespace=config.cluster.namespace,
            configmap_name=config.cluster.configmap_name,
            extension=config.cluster.extension,
        )

    def key_for(self, name: str) -> str:
        return f"{name}{self.extension}"

    def _name_for(self, key: str) -> Optional[str]:
        if not key.endswith(self.extension):
            return None
        return key[: -len(self.extension)]

    def build_document(self, models: Dict[str, str]) -> dict:
        """Build the ConfigMap for exactly the given models."""
        return {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {
                "name": self.configmap_name,
                "namespace": self.namespace,
            },
            "data": {self.key_for(name): text for name, text in sorted(models.items())},
        }

    def load(self) -> Dict[str, str]:
        """Load the model set from the persisted document."""
        if not self.path.exists():
            logger.debug(f"No ConfigMap at {self.path}, starting empty")
            return {}

        with open(self.path, encoding="utf-8") as f:
            try:
                document = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ModelDeckError(
                    f"ConfigMap {self.path} is not valid YAML: {e}",
                    code="BAD_DOCUMENT",
                ) from e

        if not isinstance(document, dict):
            raise ModelDeckError(f"ConfigMap {self.path} is not a mapping", code="BAD_DOCUMENT")

        models = {}
        for key, text in (document.get("data") or {}).items():
            name = self._name_for(str(key))
            if name is None:
                logger.debug(f"Skipping non-model key {key}")
                continue
            models[name] = "" if text is None else str(text)

        logger.debug(f"Loaded {len(models)} models from {self.path}")
        return models

    def save(self, models: Dict[str, str]) -> Path:
        """Overwrite the persisted document with ``models``."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        content = yaml.dump(
            self.build_document(models),
            Dumper=_BlockDumper,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )

        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_path, self.path)

        logger.info(f"Wrote {len(models)} models to {self.path}")
        return self.path
