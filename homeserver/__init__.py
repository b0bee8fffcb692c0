"""Home server backup coordinator."""

__version__ = "1.0.0"
__author__ = "Home Server Maintainers"
