"""Persisted lifecycle record for a deployed instance."""

import json
import os
import tempfile
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from jenkinsdeploy.errors import DeployError
from jenkinsdeploy.models import LifecycleState

_RANK = {
    LifecycleState.ABSENT: 0,
    LifecycleState.IMAGE_READY: 1,
    LifecycleState.VOLUME_READY: 2,
    LifecycleState.RUNNING: 3,
    LifecycleState.CONFIGURED: 4,
    LifecycleState.UNCONFIGURED: 4,
    LifecycleState.REMOVED: 5,
}


class StateService:
    """Persists the forward-only lifecycle of one tier's instance."""

    SCHEMA_VERSION = 1

    def __init__(self, state_file: str, logger):
        self.state_file = state_file
        self.logger = logger

    def load(self) -> Optional[Dict[str, Any]]:
        if not os.path.exists(self.state_file):
            return None

        try:
            with open(self.state_file, "r", encoding="utf-8") as file_obj:
                data = json.load(file_obj)
        except (OSError, json.JSONDecodeError) as exc:
            raise DeployError(f"Could not read state file '{self.state_file}': {exc}") from exc

        if not isinstance(data, dict):
            raise DeployError(f"State file '{self.state_file}' has invalid format.")

        return data

    def save(self, state: Dict[str, Any]):
        directory = os.path.dirname(self.state_file) or "."
        os.makedirs(directory, exist_ok=True)
        state["schema_version"] = self.SCHEMA_VERSION
        state["updated_at"] = self._now()

        fd, temp_path = tempfile.mkstemp(prefix="state-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                json.dump(state, file_obj, indent=2, sort_keys=True)
                file_obj.write("\n")
            os.replace(temp_path, self.state_file)
        except OSError as exc:
            raise DeployError(f"Could not write state file '{self.state_file}': {exc}") from exc
        finally:
            if os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError:
                    pass

    def initialize(self, tier: str) -> Dict[str, Any]:
        existing = self.load()
        if existing and existing.get("status") != LifecycleState.REMOVED.value:
            return existing

        state = {
            "schema_version": self.SCHEMA_VERSION,
            "created_at": self._now(),
            "updated_at": self._now(),
            "tier": tier,
            "status": LifecycleState.ABSENT.value,
            "transitions": [],
            "data": {},
            "setup": {"configured": None, "source": None, "observed_at": None},
            "last_error": None,
        }
        if existing:
            self.logger.debug("Previous instance was removed; starting a fresh record.")
        self.save(state)
        return state

    def current(self, state: Dict[str, Any]) -> LifecycleState:
        return LifecycleState(state.get("status", LifecycleState.ABSENT.value))

    def advance(
        self,
        state: Dict[str, Any],
        target: LifecycleState,
        step: str,
        restart: bool = False,
    ) -> LifecycleState:
        """Moves forward to ``target``; earlier states are ignored.

        ``restart`` permits re-entering RUNNING from a configured state, which
        happens when a container is recreated against the same volume.
        """
        current = self.current(state)
        if current == LifecycleState.REMOVED and target != LifecycleState.REMOVED:
            raise DeployError("Instance record is removed; start a new deployment.")

        moves_forward = _RANK[target] >= _RANK[current]
        reenters = restart and target == LifecycleState.RUNNING and _RANK[current] == 4
        if not (moves_forward or reenters or target == LifecycleState.REMOVED):
            self.logger.debug("Keeping state %s (step %s reached %s)", current.value, step, target.value)
            return current

        if target != current or reenters:
            state["transitions"].append(
                {"from": current.value, "to": target.value, "step": step, "at": self._now()}
            )
        state["status"] = target.value
        state["last_error"] = None
        self.save(state)
        return target

    def record_setup(self, state: Dict[str, Any], configured: bool, source: str):
        state["setup"] = {"configured": configured, "source": source, "observed_at": self._now()}
        self.save(state)

    def mark_failed(self, state: Dict[str, Any], step: str, error: str):
        state["last_error"] = {"step": step, "error": error, "at": self._now()}
        self.save(state)

    def set_value(self, state: Dict[str, Any], key: str, value: Any):
        state.setdefault("data", {})[key] = value
        self.save(state)

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()
