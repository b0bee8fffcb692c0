"""Obtaining the secrets passphrase."""

import logging
import os
from typing import Optional

import click

logger = logging.getLogger(__name__)

PASSPHRASE_ENV = "HOMESERVER_SECRETS_PASSPHRASE"


def obtain_passphrase(prompt: str, confirm: bool = False, non_interactive: bool = False) -> Optional[str]:
    """
    Get the secrets passphrase from the environment or the terminal.

    Args:
        prompt: Prompt shown to the operator
        confirm: Ask a second time and require both entries to match
        non_interactive: Never prompt; only the environment is consulted

    Returns:
        Optional[str]: The passphrase, or None when none could be obtained
    """
    passphrase = os.environ.get(PASSPHRASE_ENV)
    if passphrase:
        return passphrase

    if non_interactive:
        return None

    try:
        passphrase = click.prompt(prompt, hide_input=True, confirmation_prompt=confirm, default="", show_default=False)
    except click.Abort:
        # No terminal attached, or the operator pressed Ctrl-C
        logger.warning("No passphrase entered")
        return None

    return passphrase or None
