"""Compose file rendering for the compose-orchestrated tier."""

import os
from typing import Any, Dict

import yaml

from jenkinsdeploy.constants import COMPOSE_FILE_NAME
from jenkinsdeploy.errors import DeployError
from jenkinsdeploy.models import DeploymentProfile


class ComposeService:
    """Renders and writes the compose definition for a profile."""

    def __init__(self, logger, work_dir: str):
        self.logger = logger
        self.work_dir = work_dir

    def compose_file_path(self, profile: DeploymentProfile) -> str:
        return os.path.join(self.work_dir, f"{profile.tier}-{COMPOSE_FILE_NAME}")

    def render(self, profile: DeploymentProfile) -> Dict[str, Any]:
        service: Dict[str, Any] = {
            "image": profile.image,
            "container_name": profile.container_name,
            "ports": [port.as_arg() for port in profile.ports],
            "volumes": [f"{profile.volume_name}:{profile.jenkins_home}", *profile.bind_mounts],
        }
        if profile.restart_policy:
            service["restart"] = profile.restart_policy
        if profile.health_check:
            check = profile.health_check
            service["healthcheck"] = {
                "test": ["CMD-SHELL", check.command],
                "interval": check.interval,
                "timeout": check.timeout,
                "retries": check.retries,
                "start_period": check.start_period,
            }

        document: Dict[str, Any] = {
            "services": {"jenkins": service},
            # The orchestrator owns the volume lifecycle, so compose never removes it.
            "volumes": {profile.volume_name: {"external": True, "name": profile.volume_name}},
        }
        if profile.network_name:
            service["networks"] = [profile.network_name]
            document["networks"] = {
                profile.network_name: {"driver": "bridge", "name": profile.network_name}
            }
        return document

    def write(self, profile: DeploymentProfile, path: str = None) -> str:
        target = path or self.compose_file_path(profile)
        content = yaml.safe_dump(self.render(profile), sort_keys=False)
        try:
            os.makedirs(os.path.dirname(target) or ".", exist_ok=True)
            with open(target, "w", encoding="utf-8", newline="\n") as file_obj:
                file_obj.write(content)
        except OSError as exc:
            raise DeployError(f"Could not write compose file '{target}': {exc}") from exc
        self.logger.debug("Wrote compose file %s", target)
        return target
