"""Container engine capability interface and its Docker CLI implementation."""

import json
import subprocess
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from jenkinsdeploy.errors import DeployError
from jenkinsdeploy.models import ContainerState, HealthCheck, PortMapping, VolumeInfo

# Exit status used by the in-container read helper when the file is absent.
FILE_ABSENT_EXIT = 3

_READ_SCRIPT = f'if [ -f "$1" ]; then cat "$1"; else exit {FILE_ABSENT_EXIT}; fi'
_WRITE_SCRIPT = 'mkdir -p "$(dirname "$1")" && printf %s "$2" > "$1"'


class ContainerEngine(ABC):
    """Operations the orchestrator needs from a container engine.

    Removal helpers return ``False`` when the resource does not exist so
    callers can treat absence as already satisfied.
    """

    @abstractmethod
    def image_exists(self, ref: str) -> bool: ...

    @abstractmethod
    def pull_image(self, ref: str): ...

    @abstractmethod
    def build_image(
        self,
        context_dir: str,
        dockerfile: str,
        tags: Sequence[str],
        build_args: Dict[str, str],
    ): ...

    @abstractmethod
    def remove_image(self, ref: str) -> bool: ...

    @abstractmethod
    def prune_images(self): ...

    @abstractmethod
    def volume_exists(self, name: str) -> bool: ...

    @abstractmethod
    def create_volume(self, name: str) -> VolumeInfo: ...

    @abstractmethod
    def inspect_volume(self, name: str) -> Optional[VolumeInfo]: ...

    @abstractmethod
    def remove_volume(self, name: str) -> bool: ...

    @abstractmethod
    def container_state(self, name: str) -> Optional[ContainerState]: ...

    @abstractmethod
    def run_container(
        self,
        name: str,
        image: str,
        ports: Sequence[PortMapping],
        volumes: Sequence[str],
        restart_policy: Optional[str] = None,
        health_check: Optional[HealthCheck] = None,
        network: Optional[str] = None,
    ) -> str: ...

    @abstractmethod
    def start_container(self, name: str): ...

    @abstractmethod
    def stop_container(self, name: str) -> bool: ...

    @abstractmethod
    def remove_container(self, name: str) -> bool: ...

    @abstractmethod
    def read_file(self, container: str, path: str) -> Optional[str]: ...

    @abstractmethod
    def write_file(self, container: str, path: str, content: str): ...

    @abstractmethod
    def logs(self, container: str, tail: int) -> str: ...

    @abstractmethod
    def compose_up(self, compose_file: str, project: str): ...

    @abstractmethod
    def compose_down(self, compose_file: str, project: str) -> bool: ...

    @abstractmethod
    def list_containers(self, name: str) -> List[str]: ...

    @abstractmethod
    def list_volumes(self, name: str) -> List[str]: ...

    @abstractmethod
    def list_images(self, ref: str) -> List[str]: ...

    @abstractmethod
    def list_networks(self, name: str) -> List[str]: ...

    def container_exists(self, name: str) -> bool:
        return self.container_state(name) is not None


class DockerCliEngine(ContainerEngine):
    """Drives the ``docker`` command line through a CommandRunner."""

    def __init__(self, runner, logger, compose_cmd: Optional[List[str]] = None, subprocess_module=subprocess):
        self.runner = runner
        self.logger = logger
        self.subprocess = subprocess_module
        self._compose_cmd = compose_cmd

    def get_docker_compose_cmd(self) -> List[str]:
        if self._compose_cmd is not None:
            return self._compose_cmd
        try:
            self.subprocess.run(["docker", "compose", "version"], check=True, capture_output=True)
            self._compose_cmd = ["docker", "compose"]
        except (self.subprocess.CalledProcessError, FileNotFoundError):
            try:
                self.subprocess.run(["docker-compose", "--version"], check=True, capture_output=True)
                self._compose_cmd = ["docker-compose"]
            except (self.subprocess.CalledProcessError, FileNotFoundError):
                raise DeployError(
                    "Docker Compose is not available. Install Docker Compose v2 (`docker compose`) "
                    "or v1 (`docker-compose`) and try again."
                )
        self.logger.debug("Using compose command: %s", " ".join(self._compose_cmd))
        return self._compose_cmd

    def _probe(self, cmd: List[str]) -> bool:
        return self.runner.run(cmd, check=False, capture_output=True).returncode == 0

    def _inspect(self, cmd: List[str]) -> Optional[dict]:
        result = self.runner.run(cmd, check=False, capture_output=True)
        if result.returncode != 0:
            return None
        try:
            data = json.loads(result.stdout or "[]")
        except json.JSONDecodeError as exc:
            raise DeployError(f"Unexpected output from `{' '.join(cmd)}`: {exc}") from exc
        return data[0] if data else None

    def _names(self, cmd: List[str], wanted: str) -> List[str]:
        result = self.runner.run(cmd, check=True, capture_output=True)
        names = [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]
        return [item for item in names if item == wanted]

    def image_exists(self, ref: str) -> bool:
        return self._probe(["docker", "image", "inspect", ref])

    def pull_image(self, ref: str):
        self.runner.run(["docker", "pull", ref], check=True)

    def build_image(self, context_dir, dockerfile, tags, build_args):
        cmd = ["docker", "build"]
        for tag in tags:
            cmd += ["--tag", tag]
        for key, value in build_args.items():
            cmd += ["--build-arg", f"{key}={value}"]
        cmd += ["--file", dockerfile, "--progress=plain", context_dir]
        self.runner.run(cmd, check=True)

    def remove_image(self, ref: str) -> bool:
        if not self.image_exists(ref):
            return False
        self.runner.run(["docker", "rmi", ref], check=True, capture_output=True)
        return True

    def prune_images(self):
        self.runner.run(["docker", "image", "prune", "-f"], check=True, capture_output=True)

    def volume_exists(self, name: str) -> bool:
        return self._probe(["docker", "volume", "inspect", name])

    def create_volume(self, name: str) -> VolumeInfo:
        self.runner.run(["docker", "volume", "create", name], check=True, capture_output=True)
        info = self.inspect_volume(name)
        if info is None:
            raise DeployError(f"Volume '{name}' was not found right after creation.")
        return info

    def inspect_volume(self, name: str) -> Optional[VolumeInfo]:
        data = self._inspect(["docker", "volume", "inspect", name])
        if data is None:
            return None
        return VolumeInfo(
            name=data.get("Name", name),
            driver=data.get("Driver"),
            mountpoint=data.get("Mountpoint"),
            created_at=data.get("CreatedAt"),
        )

    def remove_volume(self, name: str) -> bool:
        if not self.volume_exists(name):
            return False
        self.runner.run(["docker", "volume", "rm", name], check=True, capture_output=True)
        return True

    def container_state(self, name: str) -> Optional[ContainerState]:
        data = self._inspect(["docker", "container", "inspect", name])
        if data is None:
            return None
        state = data.get("State") or {}
        health = (state.get("Health") or {}).get("Status")
        return ContainerState(
            status=state.get("Status", "unknown"),
            running=bool(state.get("Running")),
            health=health,
        )

    def run_container(
        self,
        name,
        image,
        ports,
        volumes,
        restart_policy=None,
        health_check=None,
        network=None,
    ) -> str:
        cmd = ["docker", "run", "-d", "--name", name]
        for port in ports:
            cmd += ["-p", port.as_arg()]
        for volume in volumes:
            cmd += ["-v", volume]
        if restart_policy:
            cmd += ["--restart", restart_policy]
        if network:
            cmd += ["--network", network]
        if health_check:
            cmd += [
                "--health-cmd",
                health_check.command,
                "--health-interval",
                health_check.interval,
                "--health-timeout",
                health_check.timeout,
                "--health-retries",
                str(health_check.retries),
                "--health-start-period",
                health_check.start_period,
            ]
        cmd.append(image)
        result = self.runner.run(cmd, check=True, capture_output=True)
        return (result.stdout or "").strip()

    def start_container(self, name: str):
        self.runner.run(["docker", "start", name], check=True, capture_output=True)

    def stop_container(self, name: str) -> bool:
        if not self.container_exists(name):
            return False
        self.runner.run(["docker", "stop", name], check=True, capture_output=True)
        return True

    def remove_container(self, name: str) -> bool:
        if not self.container_exists(name):
            return False
        self.runner.run(["docker", "rm", name], check=True, capture_output=True)
        return True

    def read_file(self, container: str, path: str) -> Optional[str]:
        cmd = ["docker", "exec", container, "sh", "-c", _READ_SCRIPT, "sh", path]
        result = self.runner.run(cmd, check=False, capture_output=True)
        if result.returncode == FILE_ABSENT_EXIT:
            return None
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise DeployError(f"Could not read {path} in '{container}' ({result.returncode}): {stderr}")
        return (result.stdout or "").strip()

    def write_file(self, container: str, path: str, content: str):
        cmd = ["docker", "exec", container, "sh", "-c", _WRITE_SCRIPT, "sh", path, content]
        self.runner.run(cmd, check=True, capture_output=True)

    def logs(self, container: str, tail: int) -> str:
        result = self.runner.run(
            ["docker", "logs", "--tail", str(tail), container],
            check=False,
            capture_output=True,
        )
        return "\n".join(part for part in (result.stdout, result.stderr) if part).strip()

    def compose_up(self, compose_file: str, project: str):
        cmd = self.get_docker_compose_cmd() + ["-f", compose_file, "-p", project, "up", "-d"]
        self.runner.run(cmd, check=True)

    def compose_down(self, compose_file: str, project: str) -> bool:
        cmd = self.get_docker_compose_cmd() + ["-f", compose_file, "-p", project, "down"]
        return self.runner.run(cmd, check=False, capture_output=True).returncode == 0

    def list_containers(self, name: str) -> List[str]:
        return self._names(
            ["docker", "ps", "-a", "--filter", f"name=^{name}$", "--format", "{{.Names}}"],
            name,
        )

    def list_volumes(self, name: str) -> List[str]:
        return self._names(
            ["docker", "volume", "ls", "--filter", f"name={name}", "--format", "{{.Name}}"],
            name,
        )

    def list_images(self, ref: str) -> List[str]:
        return self._names(
            ["docker", "images", "--filter", f"reference={ref}", "--format", "{{.Repository}}:{{.Tag}}"],
            ref,
        )

    def list_networks(self, name: str) -> List[str]:
        return self._names(
            ["docker", "network", "ls", "--filter", f"name={name}", "--format", "{{.Name}}"],
            name,
        )
