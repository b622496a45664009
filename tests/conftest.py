from typing import Dict, List, Optional

import pytest
import yaml

from jenkinsdeploy.errors import DeployError
from jenkinsdeploy.models import ContainerState, VolumeInfo
from jenkinsdeploy.services.engine import ContainerEngine


class FakeEngine(ContainerEngine):
    """In-memory engine: files written into a container land in its volume."""

    def __init__(self):
        self.images = set()
        self.volumes: Dict[str, Dict[str, str]] = {}
        self.volume_info: Dict[str, VolumeInfo] = {}
        self.containers: Dict[str, dict] = {}
        self.networks = set()
        self.calls: List[tuple] = []
        self.pulled: List[str] = []
        self.builds: List[dict] = []
        self.health: Optional[str] = None
        self._volume_serial = 0

    def image_exists(self, ref):
        return ref in self.images

    def pull_image(self, ref):
        self.calls.append(("pull", ref))
        self.pulled.append(ref)
        self.images.add(ref)

    def build_image(self, context_dir, dockerfile, tags, build_args):
        self.calls.append(("build", tuple(tags)))
        self.builds.append({"context": context_dir, "dockerfile": dockerfile, "args": dict(build_args)})
        self.images.update(tags)

    def remove_image(self, ref):
        self.calls.append(("rmi", ref))
        if ref not in self.images:
            return False
        self.images.discard(ref)
        return True

    def prune_images(self):
        self.calls.append(("prune",))

    def volume_exists(self, name):
        return name in self.volumes

    def create_volume(self, name):
        self.calls.append(("volume_create", name))
        self._volume_serial += 1
        self.volumes[name] = {}
        self.volume_info[name] = VolumeInfo(
            name=name,
            driver="local",
            mountpoint=f"/var/lib/docker/volumes/{name}-{self._volume_serial}/_data",
            created_at="2026-10-19T00:00:00Z",
        )
        return self.volume_info[name]

    def inspect_volume(self, name):
        return self.volume_info.get(name)

    def remove_volume(self, name):
        self.calls.append(("volume_rm", name))
        if name not in self.volumes:
            return False
        if any(c["volume"] == name for c in self.containers.values()):
            raise DeployError(f"volume is in use: {name}")
        del self.volumes[name]
        del self.volume_info[name]
        return True

    def container_state(self, name):
        container = self.containers.get(name)
        if container is None:
            return None
        status = "running" if container["running"] else "exited"
        return ContainerState(status=status, running=container["running"], health=self.health)

    def run_container(self, name, image, ports, volumes, restart_policy=None, health_check=None, network=None):
        self.calls.append(("run", name))
        if name in self.containers:
            raise DeployError(f"Conflict. The container name \"/{name}\" is already in use")
        if image not in self.images:
            raise DeployError(f"Unable to find image '{image}'")
        volume_name, mount = volumes[0].split(":", 1)
        self.volumes.setdefault(volume_name, {})
        self.containers[name] = {
            "image": image,
            "volume": volume_name,
            "mount": mount,
            "ports": list(ports),
            "restart": restart_policy,
            "health_check": health_check,
            "network": network,
            "running": True,
        }
        return f"{name}-id"

    def start_container(self, name):
        self.containers[name]["running"] = True

    def stop_container(self, name):
        if name not in self.containers:
            return False
        self.containers[name]["running"] = False
        return True

    def remove_container(self, name):
        self.calls.append(("rm", name))
        return self.containers.pop(name, None) is not None

    def _files(self, container):
        record = self.containers[container]
        return self.volumes[record["volume"]], record["mount"]

    def read_file(self, container, path):
        files, mount = self._files(container)
        if path.startswith(mount):
            return files.get(path)
        return None

    def write_file(self, container, path, content):
        files, _ = self._files(container)
        files[path] = content

    def logs(self, container, tail):
        return "Jenkins is fully up and running"

    def compose_up(self, compose_file, project):
        self.calls.append(("compose_up", project))
        with open(compose_file, "r", encoding="utf-8") as file_obj:
            document = yaml.safe_load(file_obj)
        for network in (document.get("networks") or {}).values():
            self.networks.add(network["name"])
        for service in document["services"].values():
            for declared in document.get("volumes", {}).values():
                if declared.get("external") and declared["name"] not in self.volumes:
                    raise DeployError(f"external volume \"{declared['name']}\" not found")
            self.run_container(
                name=service["container_name"],
                image=service["image"],
                ports=service["ports"],
                volumes=service["volumes"],
                restart_policy=service.get("restart"),
                network=(service.get("networks") or [None])[0],
            )

    def compose_down(self, compose_file, project):
        self.calls.append(("compose_down", project))
        with open(compose_file, "r", encoding="utf-8") as file_obj:
            document = yaml.safe_load(file_obj)
        for service in document["services"].values():
            self.containers.pop(service["container_name"], None)
        for network in (document.get("networks") or {}).values():
            self.networks.discard(network["name"])
        return True

    def list_containers(self, name):
        return [item for item in self.containers if item == name]

    def list_volumes(self, name):
        return [item for item in self.volumes if item == name]

    def list_images(self, ref):
        return [item for item in self.images if item == ref]

    def list_networks(self, name):
        return [item for item in self.networks if item == name]


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def __init__(self):
        self.messages = []

    def print(self, *args, **_kwargs):
        self.messages.append(" ".join(str(arg) for arg in args))


class InstantReadiness:
    def __init__(self):
        self.waited = []

    def wait(self, profile, timeout=None):
        self.waited.append(profile.container_name)


class StaticConfirmation:
    def __init__(self, answer: bool):
        self.answer = answer
        self.questions = []

    def confirm(self, question):
        self.questions.append(question)
        return self.answer


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def dummy_logger():
    return DummyLogger()


@pytest.fixture
def dummy_console():
    return DummyConsole()


@pytest.fixture
def make_deployer(tmp_path, fake_engine):
    from jenkinsdeploy.core import JenkinsDeployer
    from jenkinsdeploy.profiles import build_profile

    def factory(tier="foundational", answer=True, **overrides):
        profile = build_profile(tier, overrides)
        deployer = JenkinsDeployer(
            profile=profile,
            engine=fake_engine,
            state_dir=str(tmp_path / "state"),
            confirmation_service=StaticConfirmation(answer),
            readiness_service=InstantReadiness(),
        )
        return deployer

    return factory
