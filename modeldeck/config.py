"""
Configuration management for modeldeck.

Handles:
- Cluster coordinates (namespace, ConfigMap, deployment, mounts)
- SQL API connectivity probe settings
- API server settings
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)

# Default paths
DEFAULT_DATA_DIR = Path.home() / ".modeldeck"

DEFAULT_API_PORT = 3333     # Model editor HTTP API
DEFAULT_SQL_PORT = 15432    # Cube.js SQL API

SQL_PASSWORD_ENV = "MODELDECK_SQL_PASSWORD"


def _known(cls, data: dict) -> dict:
    # Filter to only known fields to handle config evolution
    known_fields = set(cls.__dataclass_fields__)
    return {k: v for k, v in data.items() if k in known_fields}


@dataclass
class ClusterConfig:
    """Where the models live inside the cluster."""
    namespace: str = "stcs"
    configmap_name: str = "cube-models"
    deployment: str = "cube"
    container_index: int = 0
    volume_name: str = "cube-models-volume"
    mount_dir: str = "/cube/conf/model"
    extension: str = ".js"
    kubectl: str = "kubectl"
    rollout_timeout: int = 60  # seconds
    log_tail: int = 50
    command_timeout: Optional[float] = None  # None = wait forever

    def mount_path(self, model_name: str) -> str:
        """Path a model's text is exposed at inside the container."""
        return f"{self.mount_dir.rstrip('/')}/{self.file_name(model_name)}"

    def file_name(self, model_name: str) -> str:
        return f"{model_name}{self.extension}"

    def to_dict(self) -> dict:
        return {
            "namespace": self.namespace,
            "configmap_name": self.configmap_name,
            "deployment": self.deployment,
            "container_index": self.container_index,
            "volume_name": self.volume_name,
            "mount_dir": self.mount_dir,
            "extension": self.extension,
            "kubectl": self.kubectl,
            "rollout_timeout": self.rollout_timeout,
            "log_tail": self.log_tail,
            "command_timeout": self.command_timeout,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ClusterConfig":
        return cls(**_known(cls, data))


@dataclass
class SQLConfig:
    """Cube.js SQL API connection used by the connectivity probe."""
    host: str = "localhost"
    port: int = DEFAULT_SQL_PORT
    user: str = "cube"
    database: str = "cube"
    password: Optional[str] = None  # falls back to $MODELDECK_SQL_PASSWORD
    psql: str = "psql"

    def resolve_password(self) -> Optional[str]:
        return self.password or os.environ.get(SQL_PASSWORD_ENV)

    def to_dict(self) -> dict:
        return {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "database": self.database,
            "password": self.password,
            "psql": self.psql,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SQLConfig":
        return cls(**_known(cls, data))


@dataclass
class ServerConfig:
    """Configuration for the API server."""
    host: str = "0.0.0.0"
    port: int = DEFAULT_API_PORT
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    static_dir: Optional[str] = None  # editor UI, served at / when present

    def to_dict(self) -> dict:
        return {
            "host": self.host,
            "port": self.port,
            "cors_origins": self.cors_origins,
            "static_dir": self.static_dir,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ServerConfig":
        return cls(**_known(cls, data))


@dataclass
class Config:
    """
    Main modeldeck configuration.

    Stored at ~/.modeldeck/config.json
    """
    # Paths
    data_dir: Path = field(default_factory=lambda: DEFAULT_DATA_DIR)
    configmap_file: Optional[Path] = None

    # Components
    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    sql: SQLConfig = field(default_factory=SQLConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    # Behaviour
    validate_on_deploy: bool = True

    @property
    def config_path(self) -> Path:
        return self.data_dir / "config.json"

    @property
    def configmap_path(self) -> Path:
        if self.configmap_file:
            return Path(self.configmap_file)
        return self.data_dir / "configmaps" / f"{self.cluster.configmap_name}.yaml"

    @property
    def journal_path(self) -> Path:
        return self.data_dir / "journal.json"

    def ensure_data_dir(self) -> None:
        """Create data directory if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def to_dict(self) -> dict:
        return {
            "configmap_file": str(self.configmap_file) if self.configmap_file else None,
            "cluster": self.cluster.to_dict(),
            "sql": self.sql.to_dict(),
            "server": self.server.to_dict(),
            "validate_on_deploy": self.validate_on_deploy,
        }

    def save(self) -> None:
        """Save configuration to disk."""
        self.ensure_data_dir()

        with open(self.config_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

        logger.debug(f"Configuration saved to {self.config_path}")

    @classmethod
    def load(cls, data_dir: Optional[Path] = None) -> "Config":
        """Load configuration from disk."""
        data_dir = Path(data_dir) if data_dir else DEFAULT_DATA_DIR
        config_path = data_dir / "config.json"

        if not config_path.exists():
            return cls(data_dir=data_dir)

        with open(config_path, 'r') as f:
            data = json.load(f)

        configmap_file = data.get("configmap_file")
        config = cls(
            data_dir=data_dir,
            configmap_file=Path(configmap_file) if configmap_file else None,
            validate_on_deploy=data.get("validate_on_deploy", True),
        )

        if "cluster" in data:
            config.cluster = ClusterConfig.from_dict(data["cluster"])
        if "sql" in data:
            config.sql = SQLConfig.from_dict(data["sql"])
        if "server" in data:
            config.server = ServerConfig.from_dict(data["server"])

        return config

    @classmethod
    def exists(cls, data_dir: Optional[Path] = None) -> bool:
        """Check if configuration exists."""
        data_dir = Path(data_dir) if data_dir else DEFAULT_DATA_DIR
        return (data_dir / "config.json").exists()


# Global config instance
_config: Optional[Config] = None


def get_config(data_dir: Optional[Path] = None) -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load(data_dir)
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
