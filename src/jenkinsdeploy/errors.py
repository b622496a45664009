"""Domain errors for jenkinsdeploy."""


class DeployError(RuntimeError):
    """Raised when the deployment cannot continue safely."""


class PreconditionError(DeployError):
    """Raised when a resource required by a step does not exist yet."""
