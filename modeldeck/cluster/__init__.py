"""
Cluster access for modeldeck.

Narrow interfaces over the external tools (kubectl, psql) so deployment
sequencing can be exercised without a cluster.
"""

from .base import ConfigStore, Workload, ConnectivityProbe
from .runner import CommandRunner, CommandResult
from .kubectl import KubectlConfigStore, KubectlWorkload
from .sql import PsqlProbe

__all__ = [
    # Interfaces
    "ConfigStore",
    "Workload",
    "ConnectivityProbe",
    # Execution
    "CommandRunner",
    "CommandResult",
    # Implementations
    "KubectlConfigStore",
    "KubectlWorkload",
    "PsqlProbe",
]
