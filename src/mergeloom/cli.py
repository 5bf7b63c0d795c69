#!/usr/bin/env python3
"""mergeloom CLI - resolve pull request merge conflicts."""

import asyncio
import sys

from pydantic_settings import CliApp, CliSubCommand, get_subcommand

from mergeloom.command.resolve import ResolveCommand
from mergeloom.command.show import ShowCommand
from mergeloom.core.config import State
from mergeloom.core.log import logger


class CliState(State):
    """Resolve merge conflicts between a pull request and its base.

    ours is the base branch, theirs the pull request branch. The
    merge commit lands on the pull request branch.

    Configuration sources (in priority order):
    1. Command-line arguments (--config.merge.head_branch value)
    2. mergeloom.yaml in the current directory, --include files
    3. .env file for secrets
    4. Environment variables
       (MERGELOOM_CONFIG__STORE__TOKEN=value)
    """

    show: CliSubCommand[ShowCommand]
    resolve: CliSubCommand[ResolveCommand]

    def cli_cmd(self):
        """Dispatch to the active subcommand, or show help."""
        subcommand = get_subcommand(self, is_required=False)

        if subcommand is None:
            CliApp.run(CliState, cli_args=['--help'])
            sys.exit(1)

        # Closing the logger flushes file and OTLP sinks
        with logger:
            exit_code = asyncio.run(subcommand.run_workflow(self))
            raise SystemExit(exit_code)


def main():
    """Main entry point for CLI."""
    CliApp.run(CliState)


if __name__ == "__main__":
    main()
