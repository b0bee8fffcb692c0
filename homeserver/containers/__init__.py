"""Container management for the home server backup tool."""

from .compose import ComposeManager
from .manager import ContainerManager

__all__ = ["ComposeManager", "ContainerManager"]
