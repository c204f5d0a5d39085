"""Configuration loader for the FabricX runtime."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from fabricx.errors import InvalidConfiguration
from fabricx.errors_catalog import actionable_error


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults."""

    SUPPORTED_KEYS = {
        "host",
        "port",
        "max_workers",
        "verbose",
        "log_file",
        "work_dir",
        "tools_image",
        "compose_command",
        "command_timeout",
        "readiness_timeout",
        "readiness_interval",
        "join_settle_seconds",
        "pull_images",
        "cleanup_on_shutdown",
    }

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise InvalidConfiguration(actionable_error("config_not_found", path=config_path))

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise InvalidConfiguration(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise InvalidConfiguration("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise InvalidConfiguration(f"Unknown configuration keys: {unknown_list}")

        return parsed
