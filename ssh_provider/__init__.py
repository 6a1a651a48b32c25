"""
ssh_provider: authenticated SSH command execution and file upload for
machine provisioning.
"""

from .client import SSHProviderClient, new_pool
from .config import DEF_SETTINGS, Settings
from .remote import CommandResult, Credential, Endpoint

__all__ = [
    "CommandResult",
    "Credential",
    "DEF_SETTINGS",
    "Endpoint",
    "SSHProviderClient",
    "Settings",
    "new_pool",
]
