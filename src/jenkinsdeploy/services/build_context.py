"""Build context checks and scaffolding for the custom image tier."""

import os
import re
from typing import Any, Dict, List

import yaml

from jenkinsdeploy.constants import (
    CASC_DEFAULT_PASSWORD,
    CASC_DEFAULT_USER,
    HTTP_PORT,
    JENKINS_HOME,
    JENKINS_IMAGE,
    LOGIN_PATH,
)
from jenkinsdeploy.errors import DeployError, PreconditionError
from jenkinsdeploy.errors_catalog import actionable_error
from jenkinsdeploy.models import BuildSpec

PLUGINS_FILE = "plugins.txt"
CASC_FILE = "jenkins.yaml"

_PLUGIN_LINE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*(:[A-Za-z0-9._-]+)?$")

DEFAULT_PLUGINS = (
    "configuration-as-code",
    "git",
    "workflow-aggregator",
    "docker-workflow",
    "credentials-binding",
    "timestamper",
    "ws-cleanup",
)

DOCKERFILE_TEMPLATE = f"""FROM {JENKINS_IMAGE}

ARG BUILD_DATE
LABEL org.opencontainers.image.created=$BUILD_DATE

USER root
RUN apt-get update \\
    && apt-get install -y --no-install-recommends curl git docker.io \\
    && rm -rf /var/lib/apt/lists/*
USER jenkins

ENV JAVA_OPTS="-Djenkins.install.runSetupWizard=false"
ENV CASC_JENKINS_CONFIG={JENKINS_HOME}/casc_configs/{CASC_FILE}

COPY --chown=jenkins:jenkins {PLUGINS_FILE} /usr/share/jenkins/ref/{PLUGINS_FILE}
RUN jenkins-plugin-cli --plugin-file /usr/share/jenkins/ref/{PLUGINS_FILE}

COPY --chown=jenkins:jenkins {CASC_FILE} {JENKINS_HOME}/casc_configs/{CASC_FILE}

HEALTHCHECK --interval=30s --timeout=10s --start-period=60s --retries=5 \\
    CMD curl -fs http://localhost:{HTTP_PORT}{LOGIN_PATH} || exit 1
"""


def default_casc() -> Dict[str, Any]:
    return {
        "jenkins": {
            "systemMessage": "Jenkins configured automatically by Configuration as Code",
            "numExecutors": 2,
            "mode": "NORMAL",
            "securityRealm": {
                "local": {
                    "allowsSignup": False,
                    "users": [{"id": CASC_DEFAULT_USER, "password": CASC_DEFAULT_PASSWORD}],
                }
            },
            "authorizationStrategy": {
                "loggedInUsersCanDoAnything": {"allowAnonymousRead": False}
            },
        },
        "tool": {
            "git": {"installations": [{"name": "Default", "home": "git"}]},
        },
    }


class BuildContextService:
    """Verifies and scaffolds the Dockerfile, plugin list and CasC document."""

    def __init__(self, logger, console):
        self.logger = logger
        self.console = console

    def check(self, build: BuildSpec) -> List[str]:
        """Fails when the Dockerfile is missing; returns warnings for the rest."""
        dockerfile = os.path.join(build.context_dir, build.dockerfile)
        if not os.path.isfile(dockerfile):
            raise PreconditionError(
                actionable_error(
                    "dockerfile_not_found",
                    path=dockerfile,
                    context=build.context_dir,
                )
            )

        warnings = []
        plugins_path = os.path.join(build.context_dir, PLUGINS_FILE)
        if os.path.isfile(plugins_path):
            warnings.extend(self.lint_plugins(plugins_path))
        else:
            warnings.append(f"{PLUGINS_FILE} not found - plugin installation will be skipped")

        casc_path = os.path.join(build.context_dir, CASC_FILE)
        if os.path.isfile(casc_path):
            warnings.extend(self.lint_casc(casc_path))
        else:
            warnings.append(f"{CASC_FILE} not found - CasC configuration will be skipped")

        for warning in warnings:
            self.logger.warning(warning)
            self.console.print(f"[yellow]Warning:[/yellow] {warning}")
        return warnings

    def lint_plugins(self, path: str) -> List[str]:
        warnings = []
        with open(path, "r", encoding="utf-8") as file_obj:
            for number, raw_line in enumerate(file_obj, start=1):
                line = raw_line.split("#", 1)[0].strip()
                if line and not _PLUGIN_LINE.match(line):
                    warnings.append(f"{PLUGINS_FILE}:{number}: unexpected plugin entry '{line}'")
        return warnings

    def lint_casc(self, path: str) -> List[str]:
        try:
            with open(path, "r", encoding="utf-8") as file_obj:
                parsed = yaml.safe_load(file_obj)
        except yaml.YAMLError as exc:
            return [f"{CASC_FILE} is not valid YAML: {exc}"]
        if not isinstance(parsed, dict):
            return [f"{CASC_FILE} must contain a YAML mapping at the root"]
        return []

    def scaffold(self, context_dir: str, force: bool = False) -> List[str]:
        files = {
            "Dockerfile": DOCKERFILE_TEMPLATE,
            PLUGINS_FILE: "\n".join(DEFAULT_PLUGINS) + "\n",
            CASC_FILE: yaml.safe_dump(default_casc(), sort_keys=False),
        }

        existing = [name for name in files if os.path.exists(os.path.join(context_dir, name))]
        if existing and not force:
            raise DeployError(
                f"Refusing to overwrite existing files in {context_dir}: {', '.join(existing)}. "
                "Use --force to replace them."
            )

        os.makedirs(context_dir, exist_ok=True)
        written = []
        for name, content in files.items():
            path = os.path.join(context_dir, name)
            with open(path, "w", encoding="utf-8", newline="\n") as file_obj:
                file_obj.write(content)
            self.logger.info("Wrote %s", path)
            written.append(path)
        return written
