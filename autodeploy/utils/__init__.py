"""Utility functions for autodeploy."""

from autodeploy.utils.deployment_logger import DeploymentLogger
from autodeploy.utils.logging import configure_logging, get_logger

__all__ = [
    "DeploymentLogger",
    "configure_logging",
    "get_logger",
]
