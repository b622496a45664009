"""Readiness polling for a freshly started Jenkins container."""

import time

import requests

from jenkinsdeploy.constants import LOGIN_PATH
from jenkinsdeploy.errors import DeployError
from jenkinsdeploy.errors_catalog import actionable_error
from jenkinsdeploy.models import DeploymentProfile


class ReadinessService:
    """Polls engine health and the login page with exponential backoff."""

    def __init__(
        self,
        engine,
        logger,
        console,
        requests_module=requests,
        time_module=time,
        initial_delay: float = 1.0,
        max_delay: float = 10.0,
        probe_timeout: float = 5.0,
    ):
        self.engine = engine
        self.logger = logger
        self.console = console
        self.requests = requests_module
        self.time = time_module
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.probe_timeout = probe_timeout

    def probe_http(self, url: str) -> bool:
        try:
            response = self.requests.get(url, timeout=self.probe_timeout, allow_redirects=True)
        except self.requests.RequestException as exc:
            self.logger.debug("HTTP probe %s failed: %s", url, exc)
            return False
        status = response.status_code
        response.close()
        self.logger.debug("HTTP probe %s returned %s", url, status)
        return status < 500

    def is_ready(self, profile: DeploymentProfile) -> bool:
        state = self.engine.container_state(profile.container_name)
        if state is None or not state.running:
            status = state.status if state else "missing"
            raise DeployError(
                actionable_error(
                    "container_exited",
                    container=profile.container_name,
                    status=status,
                )
            )

        if state.health == "healthy":
            return True
        if state.health == "unhealthy":
            return False
        # The engine health check may lag behind the login page while starting.
        return self.probe_http(f"{profile.url}{LOGIN_PATH}")

    def wait(self, profile: DeploymentProfile, timeout: float = None):
        timeout = profile.readiness_timeout if timeout is None else timeout
        if timeout <= 0:
            self.logger.info("Readiness wait disabled for %s", profile.container_name)
            return

        self.console.print(f"[yellow]Waiting for Jenkins to initialize (up to {timeout:g}s)...[/yellow]")
        deadline = self.time.monotonic() + timeout
        delay = self.initial_delay
        attempt = 0

        while True:
            attempt += 1
            if self.is_ready(profile):
                self.console.print("[green]Jenkins is ready.[/green]")
                self.logger.info("Jenkins ready after %s probe(s)", attempt)
                return

            remaining = deadline - self.time.monotonic()
            if remaining <= 0:
                raise DeployError(
                    actionable_error(
                        "not_ready",
                        timeout=f"{timeout:g}",
                        container=profile.container_name,
                    )
                )
            self.time.sleep(min(delay, remaining))
            delay = min(delay * 2, self.max_delay)
