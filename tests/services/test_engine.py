import json
import subprocess

import pytest

from jenkinsdeploy.errors import DeployError
from jenkinsdeploy.models import HealthCheck, PortMapping
from jenkinsdeploy.services.engine import FILE_ABSENT_EXIT, DockerCliEngine


class RecordingRunner:
    """Replies to commands by prefix and remembers what was run."""

    def __init__(self, replies=None):
        self.commands = []
        self.replies = replies or {}

    def run(self, cmd, check=True, capture_output=False, timeout=None):
        self.commands.append(cmd)
        for prefix, (code, stdout, stderr) in self.replies.items():
            if " ".join(cmd).startswith(prefix):
                if code != 0 and check:
                    raise DeployError(f"Command failed ({code}): {' '.join(cmd)}\n{stderr}")
                return subprocess.CompletedProcess(cmd, code, stdout=stdout, stderr=stderr)
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")


def _engine(logger, replies=None):
    runner = RecordingRunner(replies)
    return DockerCliEngine(runner=runner, logger=logger, compose_cmd=["docker", "compose"]), runner


def test_run_container_builds_full_command(dummy_logger):
    engine, runner = _engine(dummy_logger, {"docker run": (0, "abc123\n", "")})

    container_id = engine.run_container(
        name="jenkins_complex",
        image="jenkins-custom-complex:latest",
        ports=[PortMapping(8080, 8080), PortMapping(50000, 50000)],
        volumes=["jenkins_data_complex:/var/jenkins_home", "/var/run/docker.sock:/var/run/docker.sock"],
        restart_policy="unless-stopped",
        health_check=HealthCheck(command="curl -fs http://localhost:8080/login || exit 1"),
    )

    cmd = runner.commands[-1]
    assert container_id == "abc123"
    assert cmd[:5] == ["docker", "run", "-d", "--name", "jenkins_complex"]
    assert ["-p", "8080:8080"] == cmd[5:7]
    assert "--restart" in cmd and "unless-stopped" in cmd
    assert "--health-cmd" in cmd
    assert cmd[-1] == "jenkins-custom-complex:latest"


def test_build_image_passes_tags_and_build_args(dummy_logger):
    engine, runner = _engine(dummy_logger)

    engine.build_image(
        context_dir="ctx",
        dockerfile="ctx/Dockerfile",
        tags=["jenkins-custom-complex:1.0", "jenkins-custom-complex:latest"],
        build_args={"BUILD_DATE": "2026-10-19T00:00:00Z"},
    )

    cmd = runner.commands[-1]
    assert cmd.count("--tag") == 2
    assert "BUILD_DATE=2026-10-19T00:00:00Z" in cmd
    assert cmd[-1] == "ctx"


def test_read_file_distinguishes_absent_from_failure(dummy_logger):
    engine, _ = _engine(dummy_logger, {"docker exec": (FILE_ABSENT_EXIT, "", "")})
    assert engine.read_file("jenkins_foundational", "/var/jenkins_home/secrets/initialAdminPassword") is None

    engine, _ = _engine(dummy_logger, {"docker exec": (0, "s3cret\n", "")})
    assert engine.read_file("jenkins_foundational", "/var/jenkins_home/secrets/initialAdminPassword") == "s3cret"

    engine, _ = _engine(dummy_logger, {"docker exec": (126, "", "OCI runtime exec failed")})
    with pytest.raises(DeployError, match="OCI runtime exec failed"):
        engine.read_file("jenkins_foundational", "/var/jenkins_home/secrets/initialAdminPassword")


def test_inspect_volume_parses_engine_json(dummy_logger):
    payload = json.dumps(
        [{"Name": "jenkins_data_complex", "Driver": "local", "Mountpoint": "/var/lib/docker/volumes/x/_data", "CreatedAt": "now"}]
    )
    engine, _ = _engine(dummy_logger, {"docker volume inspect": (0, payload, "")})

    info = engine.inspect_volume("jenkins_data_complex")

    assert info.driver == "local"
    assert info.mountpoint == "/var/lib/docker/volumes/x/_data"


def test_missing_resources_are_reported_not_raised(dummy_logger):
    engine, runner = _engine(
        dummy_logger,
        {
            "docker volume inspect": (1, "", "no such volume"),
            "docker container inspect": (1, "[]", "No such container"),
            "docker image inspect": (1, "[]", "No such image"),
        }
    )

    assert engine.remove_volume("jenkins_data_foundational") is False
    assert engine.container_state("jenkins_foundational") is None
    assert engine.remove_image("jenkins-custom-complex:1.0") is False
    assert engine.stop_container("jenkins_foundational") is False
    assert engine.remove_container("jenkins_foundational") is False
    issued = [cmd[:2] for cmd in runner.commands]
    assert ["docker", "rmi"] not in issued
    assert ["docker", "stop"] not in issued
    assert ["docker", "rm"] not in issued
    assert not any(cmd[:3] == ["docker", "volume", "rm"] for cmd in runner.commands)


def test_removal_failures_on_existing_resources_are_raised(dummy_logger):
    running = json.dumps([{"State": {"Status": "running", "Running": True}}])
    engine, _ = _engine(
        dummy_logger,
        {
            "docker container inspect": (0, running, ""),
            "docker rmi": (1, "", "image is being used by running container"),
            "docker rm": (1, "", "cannot remove a running container"),
        }
    )

    with pytest.raises(DeployError, match="image is being used"):
        engine.remove_image("jenkins-custom-complex:1.0")
    with pytest.raises(DeployError, match="cannot remove a running container"):
        engine.remove_container("jenkins_complex")
    assert engine.stop_container("jenkins_complex") is True


def test_container_state_reads_health(dummy_logger):
    payload = json.dumps([{"State": {"Status": "running", "Running": True, "Health": {"Status": "starting"}}}])
    engine, _ = _engine(dummy_logger, {"docker container inspect": (0, payload, "")})

    state = engine.container_state("jenkins_complex")

    assert state.running is True
    assert state.health == "starting"


def test_list_containers_filters_exact_names(dummy_logger):
    engine, _ = _engine(dummy_logger, {"docker ps": (0, "jenkins_complex\njenkins_complex_old\n", "")})

    assert engine.list_containers("jenkins_complex") == ["jenkins_complex"]


def test_compose_commands_use_file_and_project(dummy_logger):
    engine, runner = _engine(dummy_logger)

    engine.compose_up("state/advanced-docker-compose.yml", "advanced")

    assert runner.commands[-1] == [
        "docker", "compose", "-f", "state/advanced-docker-compose.yml", "-p", "advanced", "up", "-d",
    ]


def test_compose_detection_falls_back_to_v1(dummy_logger):
    calls = []

    class FakeSubprocess:
        CalledProcessError = subprocess.CalledProcessError

        @staticmethod
        def run(cmd, check=True, capture_output=True):
            calls.append(cmd)
            if cmd[:2] == ["docker", "compose"]:
                raise subprocess.CalledProcessError(1, cmd)
            return subprocess.CompletedProcess(cmd, 0)

    engine = DockerCliEngine(runner=RecordingRunner(), logger=dummy_logger, subprocess_module=FakeSubprocess)

    assert engine.get_docker_compose_cmd() == ["docker-compose"]
    assert engine.get_docker_compose_cmd() == ["docker-compose"]
    assert len(calls) == 2


def test_compose_detection_fails_when_unavailable(dummy_logger):
    class FakeSubprocess:
        CalledProcessError = subprocess.CalledProcessError

        @staticmethod
        def run(cmd, check=True, capture_output=True):
            raise FileNotFoundError(cmd[0])

    engine = DockerCliEngine(runner=RecordingRunner(), logger=dummy_logger, subprocess_module=FakeSubprocess)

    with pytest.raises(DeployError, match="Docker Compose is not available"):
        engine.get_docker_compose_cmd()
