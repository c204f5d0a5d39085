"""Filesystem helpers for the FabricX runtime."""

import logging
import os
import shutil
import sys
from typing import Any

import yaml
from rich.console import Console

from fabricx.constants import DIR_MODE
from fabricx.errors import FabricXError


class FileSystemService:
    """Encapsulates file and directory side effects."""

    def __init__(self, logger: logging.Logger, console: Console):
        self.logger = logger
        self.console = console

    def ensure_dir(self, path: str, mode: int = DIR_MODE):
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as exc:
            raise FabricXError(str(exc), operation="ensure_dir", details={"path": path}) from exc
        self.set_permissions(path, mode)

    def set_permissions(self, path: str, mode: int):
        if sys.platform == "win32":
            return

        try:
            os.chmod(path, mode)
        except OSError as exc:
            self.logger.warning("Could not set permissions on %s: %s", path, exc)

    def write_yaml(self, path: str, document: Any):
        self.ensure_dir(os.path.dirname(path))
        try:
            with open(path, "w", encoding="utf-8", newline="\n") as file_obj:
                yaml.safe_dump(document, file_obj, default_flow_style=False, sort_keys=False)
        except (OSError, yaml.YAMLError) as exc:
            raise FabricXError(str(exc), operation="write_yaml", details={"path": path}) from exc
        self.logger.debug("Wrote %s", path)

    def cleanup_dir(self, path: str) -> bool:
        if not os.path.exists(path):
            return True
        try:
            shutil.rmtree(path)
            self.logger.debug("Removed directory: %s", path)
            return True
        except OSError as exc:
            message = f"Warning: Could not remove {path}: {exc}"
            self.console.print(f"[yellow]{message}[/yellow]")
            self.logger.warning(message)
            return False
