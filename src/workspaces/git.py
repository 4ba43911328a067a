"""Git subprocess execution for workspace checkouts.

Runs git through asyncio subprocesses with explicit argument vectors (never
a shell string), enforces a deadline on every invocation, and masks
installation tokens in anything that reaches logs or error messages.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Sequence, Tuple

from src.workspaces.errors import ProcessError

logger = logging.getLogger(__name__)

DEFAULT_GIT_TIMEOUT_SECONDS = 300

_TOKEN_IN_URL = re.compile(r"x-access-token:[^@\s]+@")


def mask_credentials(text: str) -> str:
    """Replace embedded installation tokens with a placeholder."""
    return _TOKEN_IN_URL.sub("x-access-token:[MASKED]@", text)


def authenticated_url(clone_url: str, token: str, host: str = "github.com") -> str:
    """Splice an installation token into an unauthenticated HTTPS remote.

    Args:
        clone_url: Remote such as https://github.com/acme/widgets.git.
        token: Installation access token.
        host: Host the token is valid for.

    Returns:
        https://x-access-token:<token>@<host>/... for remotes on ``host``.

    Raises:
        ProcessError: If the remote does not point at ``host``.
    """
    prefix = f"https://{host}/"
    if not clone_url.startswith(prefix):
        raise ProcessError(
            "remote",
            f"clone URL {clone_url} is not hosted on {host}",
        )
    return f"https://x-access-token:{token}@{host}/{clone_url[len(prefix):]}"


class GitRunner:
    """Executes git commands as async subprocesses.

    Attributes:
        executable: Path or name of the git binary.
        timeout_seconds: Deadline applied to each invocation.
    """

    def __init__(
        self,
        executable: str = "git",
        timeout_seconds: int = DEFAULT_GIT_TIMEOUT_SECONDS,
    ):
        self.executable = executable
        self.timeout_seconds = timeout_seconds

    async def clone(self, remote_url: str, target: Path, branch: str) -> None:
        """Clone ``branch`` of ``remote_url`` into ``target``."""
        await self._run("clone", ["clone", "--branch", branch, remote_url, str(target)])

    async def set_remote_url(self, checkout: Path, remote_url: str) -> None:
        """Point the checkout's origin at ``remote_url``."""
        await self._run(
            "remote set-url",
            ["-C", str(checkout), "remote", "set-url", "origin", remote_url],
        )

    async def pull(self, checkout: Path) -> None:
        await self._run("pull", ["-C", str(checkout), "pull"])

    async def _run(self, command: str, args: Sequence[str]) -> Tuple[str, str]:
        """Run git with ``args`` and return decoded (stdout, stderr).

        Raises:
            ProcessError: On non-zero exit, launch failure, or timeout.
        """
        logger.debug(
            "Running git",
            extra={"args": mask_credentials(" ".join(args))},
        )

        try:
            process = await asyncio.create_subprocess_exec(
                self.executable,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ProcessError(
                command, f"Failed to execute git: {exc}", original_error=exc
            ) from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            await self._kill(process)
            raise ProcessError(
                command,
                f"timed out after {self.timeout_seconds}s",
                original_error=exc,
            ) from exc

        stdout_text = mask_credentials(stdout.decode(errors="replace").strip())
        stderr_text = mask_credentials(stderr.decode(errors="replace").strip())

        if process.returncode != 0:
            raise ProcessError(
                command,
                stderr_text or f"exit code {process.returncode}",
                returncode=process.returncode,
                stderr=stderr_text,
            )

        if stderr_text and command == "clone" and "Cloning into" not in stderr_text:
            logger.warning("git clone stderr", extra={"stderr": stderr_text})

        return stdout_text, stderr_text

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
