"""
API server for modeldeck.

Provides the REST endpoints the model editor uses for:
- Listing, reading and validating models
- Deploying and deleting models
- Cluster status, logs and SQL API checks
"""

from .server import create_app, get_coordinator, set_coordinator, run_server
from .routes import router

__all__ = [
    "create_app",
    "get_coordinator",
    "set_coordinator",
    "run_server",
    "router",
]
