"""Locating server directories under the configured servers root."""

from pathlib import Path


def server_path(servers_dir: Path, name: str) -> Path:
    """Directory of server ``name``; rejects names that escape the root."""
    root = Path(servers_dir).resolve()
    if not name or name in (".", ".."):
        raise ValueError(f"Invalid server name: {name!r}")
    path = (root / name).resolve()
    if path.parent != root:
        raise ValueError(f"Invalid server name: {name!r}")
    return path
