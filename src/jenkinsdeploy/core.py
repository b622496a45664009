import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from rich.console import Console
from rich.table import Table

from .constants import (
    CASC_DEFAULT_PASSWORD,
    CASC_DEFAULT_USER,
    PERSISTENCE_MARKER,
    SECRET_FILE,
    SETUP_SENTINEL,
    STATE_DIR_NAME,
)
from .errors import DeployError, PreconditionError
from .errors_catalog import actionable_error
from .models import (
    DeploymentProfile,
    LifecycleState,
    PersistenceReport,
    SecretResult,
    TeardownReport,
    VolumeInfo,
)
from .services.build_context import BuildContextService
from .services.command_runner import CommandRunner
from .services.compose import ComposeService
from .services.confirmation import ConfirmationService
from .services.engine import ContainerEngine, DockerCliEngine
from .services.readiness import ReadinessService
from .services.state import StateService

console = Console()
logger = logging.getLogger("jenkinsdeploy")


class JenkinsDeployer:
    """Provisions, verifies and tears down one tier's Jenkins instance."""

    def __init__(
        self,
        profile: DeploymentProfile,
        engine: Optional[ContainerEngine] = None,
        state_dir: Optional[str] = None,
        assume_yes: bool = False,
        command_timeout: Optional[float] = None,
        confirmation_service: Optional[ConfirmationService] = None,
        readiness_service: Optional[ReadinessService] = None,
    ):
        self.profile = profile
        self.cwd = os.getcwd()
        self.state_dir = state_dir or os.path.join(self.cwd, STATE_DIR_NAME)

        self.command_runner = CommandRunner(logger=logger, default_timeout=command_timeout)
        self.engine = engine or DockerCliEngine(runner=self.command_runner, logger=logger)
        self.state_service = StateService(
            state_file=os.path.join(self.state_dir, f"{profile.tier}-state.json"),
            logger=logger,
        )
        self.compose_service = ComposeService(logger=logger, work_dir=self.state_dir)
        self.build_context_service = BuildContextService(logger=logger, console=console)
        self.confirmation_service = confirmation_service or ConfirmationService(
            logger=logger,
            assume_yes=assume_yes,
        )
        self.readiness_service = readiness_service or ReadinessService(
            engine=self.engine,
            logger=logger,
            console=console,
        )
        self.state: Optional[Dict[str, Any]] = None
        self.current_step_name: Optional[str] = None

    def _state(self) -> Dict[str, Any]:
        if self.state is None:
            self.state = self.state_service.initialize(self.profile.tier)
        return self.state

    def execute(self, name: str, callback: Callable, *args, fail_soft: bool = False, **kwargs) -> int:
        """Runs one operation and maps its outcome to a process exit code."""
        self.current_step_name = name
        try:
            logger.debug("Starting %s for tier %s", name, self.profile.tier)
            callback(*args, **kwargs)
            return 0
        except KeyboardInterrupt:
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            self._record_failure("Operation cancelled by user.")
            return 0 if fail_soft else 1
        except DeployError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            self._record_failure(str(exc))
            return 0 if fail_soft else 1
        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error")
            self._record_failure(str(exc))
            return 0 if fail_soft else 1
        finally:
            self.current_step_name = None

    def _record_failure(self, error: str):
        if self.state is None:
            return
        try:
            self.state_service.mark_failed(self.state, self.current_step_name or "run", error)
        except DeployError as exc:
            logger.warning("Could not record failure: %s", exc)

    def _step_banner(self, title: str):
        console.print(f"[bold blue]{title}[/bold blue]")
        logger.info(title)

    # Image

    def ensure_image(self) -> str:
        profile = self.profile
        build = profile.build

        if build is None:
            self._step_banner(f"Pulling image {profile.image}...")
            self.engine.pull_image(profile.image)
            console.print(f"[green]Image {profile.image} pulled.[/green]")
        else:
            self._step_banner(f"Building image {', '.join(build.tags)}...")
            self.build_context_service.check(build)
            build_args = dict(build.build_args)
            build_args.setdefault(
                "BUILD_DATE",
                datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            )
            self.engine.build_image(
                context_dir=build.context_dir,
                dockerfile=os.path.join(build.context_dir, build.dockerfile),
                tags=build.tags,
                build_args=build_args,
            )
            console.print("[green]Image built successfully.[/green]")

        state = self._state()
        self.state_service.set_value(state, "image", profile.image)
        self.state_service.advance(state, LifecycleState.IMAGE_READY, "ensure_image")
        return profile.image

    # Volume

    def ensure_volume(self) -> VolumeInfo:
        name = self.profile.volume_name
        self._step_banner(f"Ensuring volume {name}...")

        info = self.engine.inspect_volume(name)
        if info is not None:
            recreate = self.confirmation_service.confirm(
                f"Volume '{name}' already exists. Remove and recreate it? ALL JENKINS DATA WILL BE LOST."
            )
            if not recreate:
                console.print(f"[green]Using existing volume {name}.[/green]")
            else:
                logger.info("Removing existing volume %s", name)
                self.engine.remove_volume(name)
                info = None

        if info is None:
            info = self.engine.create_volume(name)
            console.print(f"[green]Volume {name} created.[/green]")

        logger.info("Volume %s (driver=%s, mountpoint=%s)", info.name, info.driver, info.mountpoint)
        self.state_service.advance(self._state(), LifecycleState.VOLUME_READY, "ensure_volume")
        return info

    # Container

    def _require_container(self, running: bool = False):
        name = self.profile.container_name
        state = self.engine.container_state(name)
        if state is None:
            raise PreconditionError(
                actionable_error("container_not_found", container=name, tier=self.profile.tier)
            )
        if running and not state.running:
            raise PreconditionError(
                actionable_error("container_not_running", container=name, tier=self.profile.tier)
            )
        return state

    def _remove_container(self):
        profile = self.profile
        if profile.use_compose:
            compose_file = self.compose_service.write(profile)
            self.engine.compose_down(compose_file, profile.compose_project or profile.tier)
        self.engine.stop_container(profile.container_name)
        self.engine.remove_container(profile.container_name)

    def run_instance(self, timeout: Optional[float] = None) -> str:
        profile = self.profile
        self._step_banner(f"Starting container {profile.container_name}...")

        if not self.engine.image_exists(profile.image):
            raise PreconditionError(
                actionable_error("image_not_found", image=profile.image, tier=profile.tier)
            )
        if not self.engine.volume_exists(profile.volume_name):
            raise PreconditionError(
                actionable_error("volume_not_found", volume=profile.volume_name, tier=profile.tier)
            )

        if self.engine.container_exists(profile.container_name):
            recreate = self.confirmation_service.confirm(
                f"Container '{profile.container_name}' already exists. Remove and recreate it?"
            )
            if not recreate:
                raise PreconditionError(
                    actionable_error("container_exists", container=profile.container_name)
                )
            logger.info("Removing existing container %s", profile.container_name)
            self._remove_container()

        container_id = self._start_container()
        console.print(f"[green]Container {profile.container_name} started.[/green]")

        self.readiness_service.wait(profile, timeout=timeout)

        state = self._state()
        self.state_service.set_value(state, "container_id", container_id)
        self.state_service.advance(state, LifecycleState.RUNNING, "run_instance", restart=True)
        return container_id

    def _start_container(self) -> str:
        profile = self.profile
        if profile.use_compose:
            compose_file = self.compose_service.write(profile)
            self.engine.compose_up(compose_file, profile.compose_project or profile.tier)
            return profile.container_name

        return self.engine.run_container(
            name=profile.container_name,
            image=profile.image,
            ports=profile.ports,
            volumes=[f"{profile.volume_name}:{profile.jenkins_home}", *profile.bind_mounts],
            restart_policy=profile.restart_policy,
            health_check=profile.health_check,
            network=profile.network_name,
        )

    # Secret

    def retrieve_secret(self, log_lines: int = 0) -> SecretResult:
        profile = self.profile
        self._step_banner("Retrieving Jenkins admin password...")
        self._require_container(running=True)
        name = profile.container_name

        if self.engine.read_file(name, SETUP_SENTINEL) is not None:
            result = self._configured_result("sentinel")
        else:
            password = self.engine.read_file(name, SECRET_FILE)
            if password:
                result = SecretResult(password=password, configured=False, source="secret_file")
            else:
                result = self._configured_result("casc" if profile.casc_enabled else "secret_absent")
                self.engine.write_file(name, SETUP_SENTINEL, self._now())
                logger.debug("Wrote setup sentinel %s", SETUP_SENTINEL)

        state = self._state()
        self.state_service.record_setup(state, result.configured, result.source)
        target = LifecycleState.CONFIGURED if result.configured else LifecycleState.UNCONFIGURED
        self.state_service.advance(state, target, "retrieve_secret")

        self.print_secret(result)
        if log_lines > 0:
            console.print(f"[dim]Container logs (last {log_lines} lines):[/dim]")
            console.print(self.engine.logs(name, log_lines), markup=False, highlight=False)
        return result

    def _configured_result(self, source: str) -> SecretResult:
        credentials = None
        if self.profile.casc_enabled:
            credentials = (CASC_DEFAULT_USER, CASC_DEFAULT_PASSWORD)
        return SecretResult(
            password=None,
            configured=True,
            source=source,
            default_credentials=credentials,
        )

    def print_secret(self, result: SecretResult):
        if result.password:
            console.print("[bold]Jenkins Admin Password:[/bold]")
            console.print(result.password, markup=False, highlight=False)
            return

        console.print("[yellow]Initial password not found: Jenkins is already configured.[/yellow]")
        if result.default_credentials:
            user, password = result.default_credentials
            console.print(f"Configuration as Code credentials: {user} / {password}", markup=False)

    # Persistence

    def verify_persistence(self, timeout: Optional[float] = None) -> PersistenceReport:
        profile = self.profile
        self._step_banner(f"Verifying data persistence for volume {profile.volume_name}...")

        container = self._require_container()
        if not self.engine.volume_exists(profile.volume_name):
            raise PreconditionError(
                actionable_error("volume_not_found", volume=profile.volume_name, tier=profile.tier)
            )
        if not container.running:
            logger.info("Starting stopped container %s to place the marker", profile.container_name)
            self.engine.start_container(profile.container_name)

        token = uuid.uuid4().hex
        self.engine.write_file(profile.container_name, PERSISTENCE_MARKER, token)
        secret_before = self.engine.read_file(profile.container_name, SECRET_FILE) is not None
        self.state_service.set_value(self._state(), "persistence_marker", token)

        console.print("[blue]Stopping and removing the container (volume preserved)...[/blue]")
        self._remove_container()

        self.run_instance(timeout=timeout)

        observed = self.engine.read_file(profile.container_name, PERSISTENCE_MARKER)
        if observed != token:
            raise DeployError(
                actionable_error(
                    "persistence_lost",
                    volume=profile.volume_name,
                    container=profile.container_name,
                    mount=profile.jenkins_home,
                )
            )

        secret_after = self.engine.read_file(profile.container_name, SECRET_FILE) is not None
        secret = self.retrieve_secret()
        report = PersistenceReport(
            marker_preserved=True,
            secret_present_before=secret_before,
            secret_present_after=secret_after,
            configured=secret.configured,
        )

        console.print("[green]Volume data survived container recreation.[/green]")
        if secret_before and not secret_after:
            console.print("[yellow]Initial password disappeared after recreation.[/yellow]")
        elif not secret_after:
            console.print("[green]Setup wizard state preserved: Jenkins is already configured.[/green]")
        return report

    # Teardown

    def teardown(self, prune: bool = False) -> Optional[TeardownReport]:
        """Removes everything the profile owns; missing resources are not errors."""
        profile = self.profile
        present = self._present_resources()
        if present:
            approved = self.confirmation_service.confirm(
                f"This will remove {', '.join(present)}. ALL JENKINS DATA WILL BE LOST. Continue?"
            )
            if not approved:
                console.print("[yellow]Cleanup cancelled.[/yellow]")
                return None
        else:
            logger.info("No resources found for tier %s; nothing to confirm", profile.tier)

        report = TeardownReport()
        report.container = self._soft("remove container", self._teardown_container)
        if profile.use_compose:
            report.network = self._soft("compose down", self._compose_down)
        report.volume = self._soft(
            "remove volume",
            lambda: "removed" if self.engine.remove_volume(profile.volume_name) else "not found",
        )
        for ref in profile.image_refs:
            report.images[ref] = self._soft(
                f"remove image {ref}",
                lambda ref=ref: "removed" if self.engine.remove_image(ref) else "not found",
            )
        if prune:
            self._soft("prune dangling images", lambda: self.engine.prune_images() or "pruned")

        report.remaining = self._remaining()
        self._print_teardown(report)

        try:
            self.state_service.advance(self._state(), LifecycleState.REMOVED, "teardown")
        except DeployError as exc:
            logger.warning("Could not update state file: %s", exc)
        return report

    def _present_resources(self) -> list:
        """Names of owned resources that exist. Lookup failures count as present."""
        try:
            return [name for names in self._remaining().values() for name in names]
        except DeployError as exc:
            logger.warning("Could not list resources before cleanup: %s", exc)
            profile = self.profile
            return [profile.container_name, profile.volume_name, *profile.image_refs]

    def _soft(self, label: str, callback: Callable[[], str]) -> str:
        try:
            return callback()
        except DeployError as exc:
            logger.warning("Cleanup step '%s' failed: %s", label, exc)
            return f"failed: {exc}"

    def _compose_down(self) -> str:
        profile = self.profile
        existed = bool(profile.network_name and self.engine.list_networks(profile.network_name))
        compose_file = self.compose_service.write(profile)
        self.engine.compose_down(compose_file, profile.compose_project or profile.tier)
        return "removed" if existed else "not found"

    def _teardown_container(self) -> str:
        name = self.profile.container_name
        if not self.engine.container_exists(name):
            return "not found"
        self.engine.stop_container(name)
        return "removed" if self.engine.remove_container(name) else "not found"

    def _remaining(self) -> Dict[str, list]:
        profile = self.profile
        remaining = {
            "containers": self.engine.list_containers(profile.container_name),
            "volumes": self.engine.list_volumes(profile.volume_name),
            "images": [ref for image in profile.image_refs for ref in self.engine.list_images(image)],
        }
        if profile.network_name:
            remaining["networks"] = self.engine.list_networks(profile.network_name)
        return remaining

    def _print_teardown(self, report: TeardownReport):
        console.print(f"Container {self.profile.container_name}: {report.container}", markup=False)
        if report.network is not None:
            console.print(f"Network {self.profile.network_name}: {report.network}", markup=False)
        console.print(f"Volume {self.profile.volume_name}: {report.volume}", markup=False)
        for ref, outcome in report.images.items():
            console.print(f"Image {ref}: {outcome}", markup=False)

        if report.clean:
            console.print("[green]Cleanup complete: no Jenkins resources remain.[/green]")
        else:
            leftovers = ", ".join(name for names in report.remaining.values() for name in names)
            console.print(f"[yellow]Still present after cleanup: {leftovers}[/yellow]")
            logger.warning("Resources left after cleanup: %s", leftovers)

    # Composite operations

    def deploy(self, timeout: Optional[float] = None) -> SecretResult:
        total = 4
        console.print(f"[bold]=== Step 1/{total}: Image ===[/bold]")
        self.ensure_image()
        console.print(f"[bold]=== Step 2/{total}: Volume ===[/bold]")
        self.ensure_volume()
        console.print(f"[bold]=== Step 3/{total}: Container ===[/bold]")
        self.run_instance(timeout=timeout)
        console.print(f"[bold]=== Step 4/{total}: Password ===[/bold]")
        secret = self.retrieve_secret()
        self.print_access_info(secret)
        return secret

    def print_access_info(self, secret: SecretResult):
        profile = self.profile
        console.print("[bold green]Deployment complete![/bold green]")
        console.print(f"URL: {profile.url}", markup=False)
        if secret.password:
            console.print("Next steps: open the URL, enter the password above, install the "
                          "suggested plugins and create an admin user.")
        console.print(
            f"Verify persistence with `jenkinsdeploy --tier {profile.tier} verify`; "
            f"clean up with `jenkinsdeploy --tier {profile.tier} teardown`.",
            markup=False,
        )

    def status(self) -> Dict[str, Any]:
        profile = self.profile
        volume = self.engine.inspect_volume(profile.volume_name)
        container = self.engine.container_state(profile.container_name)
        record = self.state_service.load() or {}
        snapshot = {
            "tier": profile.tier,
            "image": profile.image,
            "image_present": self.engine.image_exists(profile.image),
            "volume": volume,
            "container": container,
            "lifecycle": record.get("status", LifecycleState.ABSENT.value),
            "setup": record.get("setup"),
        }

        table = Table(title=f"Jenkins ({profile.tier})")
        table.add_column("Resource")
        table.add_column("Name")
        table.add_column("State")
        table.add_row("Image", profile.image, "present" if snapshot["image_present"] else "missing")
        table.add_row(
            "Volume",
            profile.volume_name,
            (volume.mountpoint or "present") if volume else "missing",
        )
        if container is None:
            container_status = "missing"
        else:
            container_status = container.status
            if container.health:
                container_status = f"{container_status} ({container.health})"
        table.add_row("Container", profile.container_name, container_status)
        table.add_row("Lifecycle", self.state_service.state_file, snapshot["lifecycle"])
        console.print(table)
        return snapshot

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()
