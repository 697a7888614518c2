"""
SQL API connectivity probe using ``psql``.
"""

from typing import Optional

from ..config import SQLConfig
from .base import ConnectivityProbe
from .runner import CommandRunner

PROBE_QUERY = "SELECT 'Connected' as status"


class PsqlProbe(ConnectivityProbe):
    """Runs a trivial query against the Cube.js SQL API."""

    def __init__(self, sql: SQLConfig, runner: Optional[CommandRunner] = None, timeout: Optional[float] = None):
        self.sql = sql
        self.runner = runner or CommandRunner()
        self.timeout = timeout

    async def check(self) -> str:
        env = {}
        password = self.sql.resolve_password()
        if password:
            env["PGPASSWORD"] = password

        result = await self.runner.run(
            [
                self.sql.psql,
                "-h", self.sql.host,
                "-p", str(self.sql.port),
                "-U", self.sql.user,
                "-d", self.sql.database,
                "-c", PROBE_QUERY,
            ],
            "Testing SQL API connection",
            timeout=self.timeout,
            env=env or None,
        )
        return result.stdout
