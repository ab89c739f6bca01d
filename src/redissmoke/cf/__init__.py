"""Cloud Foundry CLI wrapper and tenant provisioning."""

from .cli import CfCli, UserContext, cf_command
from .context import ConfiguredContext, parallel_node

__all__ = [
    "CfCli",
    "cf_command",
    "ConfiguredContext",
    "parallel_node",
    "UserContext",
]
