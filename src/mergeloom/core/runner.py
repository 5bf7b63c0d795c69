"""Command execution on top of invoke."""

import contextlib
import io
import os
import platform
from pathlib import Path

from invoke import Context, Result
from invoke.exceptions import CommandTimedOut

from mergeloom.core.log import logger


class Runner(Context):
    """invoke.Context with a single execute() entry point."""

    def kill(self) -> None:
        """Kill the running subprocess.

        invoke sends signal.SIGKILL, which Windows lacks. os.kill()
        on Windows passes the number to TerminateProcess, so 9 works
        there too.
        """
        if platform.system() == "Windows":
            pid = self.pid if self.using_pty else self.process.pid
            with contextlib.suppress(ProcessLookupError):
                os.kill(pid, 9)
            return

        super().kill()

    def execute(
        self,
        command: str,
        cwd: Path | None = None,
        timeout: int | None = None,
        stdin: str | None = None,
        check: bool = True,
        env: dict[str, str] | None = None,
    ) -> Result:
        """Run a shell command and capture its output.

        Args:
            command: Command line
            cwd: Working directory
            timeout: Seconds before the command is killed; a timed
                out command comes back with exited == -1
            stdin: Text fed to the command's standard input
            check: Raise invoke.UnexpectedExit on non-zero exit
            env: Variables added to the inherited environment

        Returns:
            invoke.Result with stdout, stderr and exited
        """
        kwargs = {
            "hide": True,
            "warn": not check,
            "in_stream": io.StringIO(stdin) if stdin is not None else False,
        }
        if timeout:
            kwargs["timeout"] = timeout
        if env:
            kwargs["env"] = env

        logger.spew("Running command", command=command, cwd=str(cwd or ""))

        try:
            if cwd:
                with self.cd(str(cwd)):
                    result = self.run(command, **kwargs)
            else:
                result = self.run(command, **kwargs)
        except CommandTimedOut as e:
            result = e.result
            result.exited = -1

        return result
