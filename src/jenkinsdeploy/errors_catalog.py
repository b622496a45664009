"""Actionable error catalog for jenkinsdeploy."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "dockerfile_not_found": {
        "what": "Dockerfile not found in build context: {path}",
        "next": "Run `jenkinsdeploy init-context {context}` or point `build_context` at a directory with a Dockerfile.",
    },
    "image_not_found": {
        "what": "Image '{image}' not found.",
        "next": "Run `jenkinsdeploy --tier {tier} image` first.",
    },
    "volume_not_found": {
        "what": "Volume '{volume}' not found.",
        "next": "Run `jenkinsdeploy --tier {tier} volume` first.",
    },
    "container_not_found": {
        "what": "Container '{container}' not found.",
        "next": "Run `jenkinsdeploy --tier {tier} run` first.",
    },
    "container_not_running": {
        "what": "Container '{container}' is not running.",
        "next": "Run `jenkinsdeploy --tier {tier} run` first.",
    },
    "container_exists": {
        "what": "Container '{container}' already exists and recreation was declined.",
        "next": "Re-run with `--yes` to recreate it, or use `docker start {container}`.",
    },
    "container_exited": {
        "what": "Container '{container}' stopped while waiting for Jenkins ({status}).",
        "next": "Inspect `docker logs {container}` for the startup failure.",
    },
    "not_ready": {
        "what": "Jenkins did not become ready within {timeout}s.",
        "next": "Check `docker logs {container}` or raise `--readiness-timeout`.",
    },
    "persistence_lost": {
        "what": "Data written to volume '{volume}' was not visible after recreating '{container}'.",
        "next": "Check that the container mounts the volume at {mount}.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
