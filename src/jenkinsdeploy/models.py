"""Shared domain models for jenkinsdeploy."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .constants import JENKINS_HOME


class LifecycleState(str, Enum):
    ABSENT = "absent"
    IMAGE_READY = "image_ready"
    VOLUME_READY = "volume_ready"
    RUNNING = "running"
    CONFIGURED = "configured"
    UNCONFIGURED = "unconfigured"
    REMOVED = "removed"


@dataclass(frozen=True)
class PortMapping:
    host_port: int
    container_port: int

    def as_arg(self) -> str:
        return f"{self.host_port}:{self.container_port}"


@dataclass(frozen=True)
class HealthCheck:
    """Engine-evaluated health probe attached to the container."""

    command: str
    interval: str = "30s"
    timeout: str = "10s"
    retries: int = 5
    start_period: str = "60s"


@dataclass(frozen=True)
class BuildSpec:
    context_dir: str
    tags: Tuple[str, ...]
    dockerfile: str = "Dockerfile"
    build_args: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DeploymentProfile:
    """Names, ports and policies describing one tier's Jenkins instance."""

    tier: str
    image: str
    container_name: str
    volume_name: str
    ports: Tuple[PortMapping, ...]
    readiness_timeout: float
    build: Optional[BuildSpec] = None
    jenkins_home: str = JENKINS_HOME
    restart_policy: Optional[str] = None
    health_check: Optional[HealthCheck] = None
    bind_mounts: Tuple[str, ...] = ()
    network_name: Optional[str] = None
    use_compose: bool = False
    compose_project: Optional[str] = None
    casc_enabled: bool = False
    http_host: str = "localhost"

    @property
    def ui_port(self) -> int:
        return self.ports[0].host_port

    @property
    def url(self) -> str:
        return f"http://{self.http_host}:{self.ui_port}"

    @property
    def image_refs(self) -> List[str]:
        """Every tag this profile owns; pulled upstream images are not owned."""
        if self.build is None:
            return []
        return list(self.build.tags)


@dataclass(frozen=True)
class VolumeInfo:
    name: str
    driver: Optional[str] = None
    mountpoint: Optional[str] = None
    created_at: Optional[str] = None


@dataclass(frozen=True)
class ContainerState:
    status: str
    running: bool
    health: Optional[str] = None


@dataclass(frozen=True)
class SecretResult:
    password: Optional[str]
    configured: bool
    source: str
    default_credentials: Optional[Tuple[str, str]] = None


@dataclass(frozen=True)
class PersistenceReport:
    marker_preserved: bool
    secret_present_before: bool
    secret_present_after: bool
    configured: bool


@dataclass
class TeardownReport:
    container: str = "not found"
    volume: str = "not found"
    network: Optional[str] = None
    images: Dict[str, str] = field(default_factory=dict)
    remaining: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def clean(self) -> bool:
        return not any(self.remaining.values())
