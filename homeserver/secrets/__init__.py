"""Secrets encryption for home server backups."""

from .cipher import SecretsCipher
from .passphrase import PASSPHRASE_ENV, obtain_passphrase

__all__ = ["PASSPHRASE_ENV", "SecretsCipher", "obtain_passphrase"]
