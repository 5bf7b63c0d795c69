"""CLI command modules for mergeloom."""

from mergeloom.command.resolve import ResolveCommand
from mergeloom.command.show import ShowCommand

__all__ = ["ResolveCommand", "ShowCommand"]
