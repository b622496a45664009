import logging
import os

import click
from rich.logging import RichHandler

from .constants import DEFAULT_CONFIG_FILE, STATE_DIR_NAME
from .core import JenkinsDeployer, console
from .errors import DeployError
from .profiles import TIERS, build_profile
from .services.build_context import BuildContextService
from .services.compose import ComposeService
from .services.config_loader import ConfigLoader


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


def _configure_logging(logger: logging.Logger, verbose: bool, log_file):
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)


@click.group()
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML configuration file. Defaults to {DEFAULT_CONFIG_FILE} if present.",
)
@click.option("--tier", required=False, type=click.Choice(TIERS), help="Deployment tier (default: foundational)")
@click.option("--image", required=False, help="Override the image reference for the tier.")
@click.option("--container-name", required=False, help="Override the container name.")
@click.option("--volume-name", required=False, help="Override the data volume name.")
@click.option("--http-port", required=False, type=int, default=None, help="Host port for the web UI.")
@click.option("--agent-port", required=False, type=int, default=None, help="Host port for inbound agents.")
@click.option(
    "--readiness-timeout",
    required=False,
    type=float,
    default=None,
    help="Seconds to wait for Jenkins to answer after starting (0 disables waiting).",
)
@click.option(
    "--build-context",
    required=False,
    type=click.Path(),
    help="Directory holding Dockerfile, plugins.txt and jenkins.yaml (complex tier).",
)
@click.option("--state-dir", required=False, type=click.Path(), help="Directory for state and compose files.")
@click.option("--yes", "assume_yes", is_flag=True, default=None, help="Approve destructive actions without asking.")
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.pass_context
def main(
    ctx,
    config,
    tier,
    image,
    container_name,
    volume_name,
    http_port,
    agent_port,
    readiness_timeout,
    build_context,
    state_dir,
    assume_yes,
    verbose,
    log_file,
):
    """Deploy, verify and tear down a containerised Jenkins server."""
    logger = logging.getLogger("jenkinsdeploy")

    try:
        config_loader = ConfigLoader()
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = config_loader.load(resolved_config)
    except DeployError as exc:
        raise click.ClickException(str(exc)) from exc

    tier = _resolve_option(tier, config_values, "tier", default="foundational")
    if tier not in TIERS:
        raise click.ClickException(f"Invalid tier '{tier}'. Supported tiers: {', '.join(TIERS)}")

    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")
    _configure_logging(logger, verbose, log_file)

    overrides = {
        "image": _resolve_option(image, config_values, "image"),
        "container_name": _resolve_option(container_name, config_values, "container_name"),
        "volume_name": _resolve_option(volume_name, config_values, "volume_name"),
        "http_port": _resolve_option(http_port, config_values, "http_port"),
        "agent_port": _resolve_option(agent_port, config_values, "agent_port"),
        "http_host": config_values.get("http_host"),
        "readiness_timeout": _resolve_option(readiness_timeout, config_values, "readiness_timeout"),
        "build_context": _resolve_option(build_context, config_values, "build_context"),
    }

    try:
        profile = build_profile(tier, overrides)
    except (DeployError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc

    command_timeout = config_values.get("command_timeout")
    ctx.obj = {
        "profile": profile,
        "state_dir": _resolve_option(state_dir, config_values, "state_dir"),
        "assume_yes": bool(_resolve_option(assume_yes, config_values, "assume_yes", default=False)),
        "command_timeout": float(command_timeout) if command_timeout is not None else None,
    }


def _deployer(ctx) -> JenkinsDeployer:
    settings = ctx.obj
    try:
        return JenkinsDeployer(
            profile=settings["profile"],
            state_dir=settings["state_dir"],
            assume_yes=settings["assume_yes"],
            command_timeout=settings["command_timeout"],
        )
    except DeployError as exc:
        raise click.ClickException(str(exc)) from exc


@main.command()
@click.pass_context
def deploy(ctx):
    """Build or pull the image, create the volume, start Jenkins and show the password."""
    deployer = _deployer(ctx)
    raise SystemExit(deployer.execute("deploy", deployer.deploy))


@main.command()
@click.pass_context
def image(ctx):
    """Pull the upstream image or build the custom one."""
    deployer = _deployer(ctx)
    raise SystemExit(deployer.execute("ensure_image", deployer.ensure_image))


@main.command()
@click.pass_context
def volume(ctx):
    """Create the data volume if it does not exist."""
    deployer = _deployer(ctx)
    raise SystemExit(deployer.execute("ensure_volume", deployer.ensure_volume))


@main.command()
@click.pass_context
def run(ctx):
    """Start the Jenkins container and wait until it answers."""
    deployer = _deployer(ctx)
    raise SystemExit(deployer.execute("run_instance", deployer.run_instance))


@main.command()
@click.option("--logs", "log_lines", type=int, default=None, help="Also show the last N container log lines.")
@click.pass_context
def password(ctx, log_lines):
    """Show the initial admin password, or how to log in if setup is done."""
    deployer = _deployer(ctx)
    if log_lines is None:
        log_lines = 20 if deployer.profile.casc_enabled else 0
    raise SystemExit(deployer.execute("retrieve_secret", deployer.retrieve_secret, log_lines=log_lines))


@main.command()
@click.pass_context
def verify(ctx):
    """Recreate the container on the same volume and check nothing was lost."""
    deployer = _deployer(ctx)
    raise SystemExit(deployer.execute("verify_persistence", deployer.verify_persistence))


@main.command()
@click.option("--prune", is_flag=True, default=False, help="Also remove dangling images.")
@click.pass_context
def teardown(ctx, prune):
    """Remove the container, volume and custom image. Always exits 0."""
    deployer = _deployer(ctx)
    raise SystemExit(deployer.execute("teardown", deployer.teardown, prune=prune, fail_soft=True))


@main.command()
@click.pass_context
def status(ctx):
    """Show image, volume, container and lifecycle state."""
    deployer = _deployer(ctx)
    raise SystemExit(deployer.execute("status", deployer.status))


@main.command("init-context")
@click.argument("directory", type=click.Path(), default=".")
@click.option("--force", is_flag=True, default=False, help="Overwrite existing files.")
def init_context(directory, force):
    """Write a starter Dockerfile, plugins.txt and jenkins.yaml."""
    service = BuildContextService(logger=logging.getLogger("jenkinsdeploy"), console=console)
    try:
        written = service.scaffold(directory, force=force)
    except DeployError as exc:
        raise click.ClickException(str(exc)) from exc
    for path in written:
        console.print(f"[green]Wrote {path}[/green]")


@main.command("compose-file")
@click.option("--output", type=click.Path(), default=None, help="Where to write the compose file.")
@click.pass_context
def compose_file(ctx, output):
    """Write the compose definition for the selected tier."""
    settings = ctx.obj
    state_dir = settings["state_dir"] or os.path.join(os.getcwd(), STATE_DIR_NAME)
    service = ComposeService(logger=logging.getLogger("jenkinsdeploy"), work_dir=state_dir)
    try:
        path = service.write(settings["profile"], path=output)
    except DeployError as exc:
        raise click.ClickException(str(exc)) from exc
    console.print(f"[green]Wrote {path}[/green]")


if __name__ == "__main__":
    main()
