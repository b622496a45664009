"""Tier defaults and profile construction."""

import os
from dataclasses import replace
from typing import Any, Dict, Optional

from .constants import (
    ADVANCED_NETWORK,
    AGENT_PORT,
    CUSTOM_IMAGE_NAME,
    CUSTOM_IMAGE_TAG,
    DOCKER_SOCKET,
    HTTP_PORT,
    JENKINS_IMAGE,
    LOGIN_PATH,
)
from .errors import DeployError
from .models import BuildSpec, DeploymentProfile, HealthCheck, PortMapping

TIERS = ("foundational", "advanced", "complex")


def _ports(http_port: int, agent_port: int):
    return (PortMapping(http_port, HTTP_PORT), PortMapping(agent_port, AGENT_PORT))


def default_profile(tier: str, build_context: Optional[str] = None) -> DeploymentProfile:
    if tier == "foundational":
        return DeploymentProfile(
            tier=tier,
            image=JENKINS_IMAGE,
            container_name="jenkins_foundational",
            volume_name="jenkins_data_foundational",
            ports=_ports(HTTP_PORT, AGENT_PORT),
            readiness_timeout=30,
        )

    if tier == "advanced":
        return DeploymentProfile(
            tier=tier,
            image=JENKINS_IMAGE,
            container_name="jenkins_advanced",
            volume_name="jenkins_data_advanced",
            ports=_ports(HTTP_PORT, AGENT_PORT),
            readiness_timeout=45,
            restart_policy="unless-stopped",
            network_name=ADVANCED_NETWORK,
            use_compose=True,
            compose_project="advanced",
        )

    if tier == "complex":
        return DeploymentProfile(
            tier=tier,
            image=f"{CUSTOM_IMAGE_NAME}:latest",
            container_name="jenkins_complex",
            volume_name="jenkins_data_complex",
            ports=_ports(HTTP_PORT, AGENT_PORT),
            readiness_timeout=60,
            build=BuildSpec(
                context_dir=build_context or os.getcwd(),
                tags=(
                    f"{CUSTOM_IMAGE_NAME}:{CUSTOM_IMAGE_TAG}",
                    f"{CUSTOM_IMAGE_NAME}:latest",
                ),
            ),
            restart_policy="unless-stopped",
            health_check=HealthCheck(
                command=f"curl -fs http://localhost:{HTTP_PORT}{LOGIN_PATH} || exit 1"
            ),
            bind_mounts=(f"{DOCKER_SOCKET}:{DOCKER_SOCKET}",),
            casc_enabled=True,
        )

    raise DeployError(f"Unknown tier '{tier}'. Supported tiers: {', '.join(TIERS)}")


def build_profile(tier: str, overrides: Optional[Dict[str, Any]] = None) -> DeploymentProfile:
    """Returns the tier default with any non-empty overrides applied."""
    overrides = {key: value for key, value in (overrides or {}).items() if value is not None}
    profile = default_profile(tier, build_context=overrides.get("build_context"))

    changes: Dict[str, Any] = {}
    for key in ("image", "container_name", "volume_name", "http_host"):
        if key in overrides:
            changes[key] = str(overrides[key])

    if "readiness_timeout" in overrides:
        changes["readiness_timeout"] = float(overrides["readiness_timeout"])

    if "http_port" in overrides or "agent_port" in overrides:
        changes["ports"] = _ports(
            int(overrides.get("http_port", profile.ports[0].host_port)),
            int(overrides.get("agent_port", profile.ports[1].host_port)),
        )

    if profile.build is not None and "image" in overrides:
        # A custom image reference replaces the owned tag set.
        changes["build"] = replace(profile.build, tags=(str(overrides["image"]),))

    return replace(profile, **changes)
