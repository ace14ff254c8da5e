"""Server liveness: resolve a server's address and probe it on an interval."""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Dict, Optional, Tuple

from pydantic import BaseModel

from gamedeck.protocol.status_probe import StatusInfo, probe
from gamedeck.storage.servers import server_path

logger = logging.getLogger(__name__)

DEFAULT_PORT = 25565
DEFAULT_HOST = "127.0.0.1"


class Heartbeat(BaseModel):
    server: str
    status: str  # "up" or "down"
    ping: Optional[StatusInfo] = None
    checked_at: datetime


def read_properties(path: Path) -> Dict[str, str]:
    """Parse a ``server.properties`` file; missing file means no overrides."""
    properties: Dict[str, str] = {}
    if not path.exists():
        return properties
    for raw in path.read_text(encoding="utf-8", errors="replace").splitlines():
        line = raw.strip()
        if not line or line.startswith(("#", "!")) or "=" not in line:
            continue
        key, value = line.split("=", 1)
        properties[key.strip()] = value.strip()
    return properties


def resolve_address(server_dir: Path) -> Tuple[str, int]:
    properties = read_properties(server_dir / "server.properties")
    try:
        port = int(properties.get("server-port", DEFAULT_PORT))
    except ValueError:
        port = DEFAULT_PORT
    host = properties.get("server-ip") or DEFAULT_HOST
    if host == "0.0.0.0":
        host = DEFAULT_HOST
    return host, port


class ServerMonitor:
    """Answers "is it alive" for servers living under ``servers_dir``."""

    def __init__(self, servers_dir: Path, timeout: float = 3.0, interval: float = 2.0):
        self._servers_dir = Path(servers_dir)
        self._timeout = timeout
        self._interval = interval

    def server_dir(self, name: str) -> Path:
        return server_path(self._servers_dir, name)

    async def ping_server(self, name: str) -> Optional[StatusInfo]:
        host, port = resolve_address(self.server_dir(name))
        return await probe(host, port, timeout=self._timeout)

    async def check(self, name: str) -> Heartbeat:
        info = await self.ping_server(name)
        if info is None:
            logger.debug("Server %s did not answer the status probe", name)
        return Heartbeat(
            server=name,
            status="up" if info is not None else "down",
            ping=info,
            checked_at=datetime.now(timezone.utc),
        )

    async def heartbeat_stream(self, name: str) -> AsyncIterator[Heartbeat]:
        """Probe forever on a fixed interval; the consumer decides when to stop."""
        while True:
            yield await self.check(name)
            await asyncio.sleep(self._interval)
