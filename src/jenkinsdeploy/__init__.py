"""
jenkinsdeploy - Jenkins container deployment in three tiers
"""

__version__ = "0.3.0"

from .core import JenkinsDeployer
from .errors import DeployError, PreconditionError
from .profiles import TIERS, build_profile

__all__ = ["JenkinsDeployer", "DeployError", "PreconditionError", "TIERS", "build_profile"]
