"""Operator confirmation for destructive actions."""

import sys

import click


class ConfirmationService:
    """Asks before destroying data; declines when nobody can answer."""

    def __init__(self, logger, assume_yes: bool = False, confirm_func=click.confirm, stdin=None):
        self.logger = logger
        self.assume_yes = assume_yes
        self.confirm_func = confirm_func
        self.stdin = stdin if stdin is not None else sys.stdin

    def confirm(self, question: str) -> bool:
        if self.assume_yes:
            self.logger.info("%s yes (--yes)", question)
            return True

        if not self.stdin.isatty():
            self.logger.warning("%s no (non-interactive; pass --yes to approve)", question)
            return False

        return bool(self.confirm_func(question, default=False))
