"""Workspace — node-local directory holding everything needed to resume.

Only the saga (and the bootstrap restorer) read and write it. Paths are
kept in two forms: the *node* path handed to the imager, and the *host*
path (``host_root`` prefixed) the agent itself opens from inside its pod.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any

import yaml

from .constants import WORKSPACE_PATH

logger = logging.getLogger("lifecycle_agent.seedgen.workspace")


class Workspace:
    def __init__(self, host_root: str, node_path: str = WORKSPACE_PATH) -> None:
        self.node_path = node_path
        self.path = Path(host_root) / node_path.lstrip("/")

    def node_file(self, name: str) -> str:
        """Path of *name* as seen on the node (used in imager arguments)."""
        return f"{self.node_path.rstrip('/')}/{name}"

    def file(self, name: str) -> Path:
        return self.path / name

    def exists(self, name: str | None = None) -> bool:
        return (self.file(name) if name else self.path).exists()

    def wipe(self) -> None:
        """Remove the workspace and everything in it (no-op if absent)."""
        if self.path.exists():
            logger.info("Removing workspace %s", self.path)
            shutil.rmtree(self.path)

    def create(self) -> None:
        """Create a fresh workspace readable by the owner only.

        Raises ``FileExistsError`` if a previous workspace was not wiped.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.mkdir(mode=0o700)
        # mkdir honours the umask; enforce the mode explicitly.
        os.chmod(self.path, 0o700)

    def write_text(self, name: str, data: str, mode: int = 0o600) -> Path:
        target = self.file(name)
        fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
        with os.fdopen(fd, "w") as fh:
            fh.write(data)
        os.chmod(target, mode)
        return target

    def read_text(self, name: str) -> str | None:
        target = self.file(name)
        if not target.exists():
            return None
        return target.read_text()

    def write_object(self, name: str, obj: dict[str, Any]) -> Path:
        """Persist a cluster object as JSON."""
        return self.write_text(name, json.dumps(obj, indent=2, sort_keys=True))

    def read_object(self, name: str) -> dict[str, Any] | None:
        """Load a stored object (JSON or YAML); ``None`` if never stored."""
        raw = self.read_text(name)
        if raw is None:
            return None
        loaded = yaml.safe_load(raw)
        if not isinstance(loaded, dict):
            raise ValueError(f"stored object {self.file(name)} is not a mapping")
        return loaded

    def retire(self, name: str) -> Path:
        """Rename a consumed file to ``<name>.bak`` instead of deleting it."""
        source = self.file(name)
        target = source.with_name(source.name + ".bak")
        source.rename(target)
        return target
