"""Reads `.jenkinsdeploy.yml` defaults for the CLI."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from jenkinsdeploy.errors import DeployError

_TEXT = (str,)
_NUMBER = (int, float)
_FLAG = (bool,)


class ConfigLoader:
    """Loads a YAML mapping of CLI defaults and checks each value's type."""

    KEY_TYPES = {
        "tier": _TEXT,
        "image": _TEXT,
        "container_name": _TEXT,
        "volume_name": _TEXT,
        "http_host": _TEXT,
        "build_context": _TEXT,
        "state_dir": _TEXT,
        "log_file": _TEXT,
        "http_port": (int,),
        "agent_port": (int,),
        "readiness_timeout": _NUMBER,
        "command_timeout": _NUMBER,
        "verbose": _FLAG,
        "assume_yes": _FLAG,
    }
    SUPPORTED_KEYS = set(KEY_TYPES)

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.is_file():
            raise DeployError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise DeployError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise DeployError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed) - self.SUPPORTED_KEYS)
        if unknown:
            raise DeployError(f"Unknown configuration keys: {', '.join(unknown)}")

        # null means "use the built-in default".
        values = {key: value for key, value in parsed.items() if value is not None}
        problems = [
            f"{key} (got {type(value).__name__})"
            for key, value in sorted(values.items())
            if not self._matches(key, value)
        ]
        if problems:
            raise DeployError(f"Invalid value types for configuration keys: {', '.join(problems)}")
        return values

    def _matches(self, key: str, value: Any) -> bool:
        expected = self.KEY_TYPES[key]
        # bool is an int subclass; only flags may be booleans.
        if isinstance(value, bool) and expected is not _FLAG:
            return False
        return isinstance(value, expected)
