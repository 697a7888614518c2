"""
modeldeck - Cube.js model editor backend

Keeps Cube.js model definitions in a Kubernetes ConfigMap and rolls them out
to the running deployment.

Example:
    >>> from modeldeck import DeploymentCoordinator, get_config
    >>> coordinator = DeploymentCoordinator.from_config(get_config())
    >>> result = await coordinator.deploy("Orders", source)
"""

__version__ = "1.0.0"

from .config import Config, get_config
from .deploy import DeploymentCoordinator, OperationResult
from .errors import ModelDeckError

__all__ = [
    "__version__",
    "Config",
    "get_config",
    "DeploymentCoordinator",
    "OperationResult",
    "ModelDeckError",
]
