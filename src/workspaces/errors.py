"""Error taxonomy for repository workspace operations.

Every failure that can abort a clone, sync, removal, or sweep is expressed
as a WorkspaceError subclass. Public engine operations catch these at their
boundary and convert them into a failed CloneResult, so callers never need
exception handling to branch on the outcome.

- NotFoundError: repository identity unknown to the registry
- RegistryError: registry unreachable or query failed
- AuthError: installation token issuance failed
- ProcessError: git exited non-zero, failed to start, or timed out
- FilesystemError: permission, disk-full, or invalid path segment
"""

from typing import Optional


class WorkspaceError(Exception):
    """Base class for workspace manager failures.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.original_error = original_error
        super().__init__(message)


class NotFoundError(WorkspaceError):
    """Raised when the registry has no record for a repository id."""

    def __init__(self, repository_id: str):
        self.repository_id = repository_id
        super().__init__(f"No repository with id {repository_id}")


class RegistryError(WorkspaceError):
    """Raised when the repository registry cannot be queried."""

    pass


class AuthError(WorkspaceError):
    """Raised when an installation access token cannot be issued."""

    def __init__(
        self,
        installation_id: Optional[int],
        message: str,
        original_error: Optional[Exception] = None,
    ):
        self.installation_id = installation_id
        super().__init__(
            f"Failed to get installation token for {installation_id}: {message}",
            original_error=original_error,
        )


class ProcessError(WorkspaceError):
    """Raised when a git subprocess fails.

    Attributes:
        command: The git subcommand that failed (e.g. "clone").
        returncode: Process exit code, or None if it never ran to completion.
        stderr: Captured standard error with credentials masked.
    """

    def __init__(
        self,
        command: str,
        message: str,
        returncode: Optional[int] = None,
        stderr: str = "",
        original_error: Optional[Exception] = None,
    ):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"git {command} failed: {message}",
            original_error=original_error,
        )


class FilesystemError(WorkspaceError):
    """Raised when a workspace directory cannot be created, read, or removed."""

    pass
