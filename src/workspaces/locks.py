"""Single-flight lock registry for workspace mutations.

Maps a resource key to the completion signal of the operation currently
running for it. A caller arriving while an operation is pending waits for
it to finish and then runs its own operation, since the filesystem may
have changed in the meantime. Entries are removed unconditionally when
their operation finishes, including on error or cancellation.

The registry is process-local. Deployments running several processes
against a shared filesystem need a distributed implementation exposing
the same ``run`` coroutine.
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")


def workspace_key(path: Union[str, Path]) -> str:
    """Build the lock key for a workspace directory.

    Every entry point keys on the normalized absolute path, so the same
    directory always maps to the same key and distinct directories never
    share one.
    """
    return str(Path(path).expanduser().resolve(strict=False))


class LockRegistry:
    """In-memory registry guaranteeing one running operation per key.

    Example:
        >>> locks = LockRegistry()
        >>> result = await locks.run("/srv/repos/T1/widgets", do_clone)
    """

    def __init__(self) -> None:
        self._pending: Dict[str, asyncio.Event] = {}

    def is_locked(self, key: str) -> bool:
        return key in self._pending

    def pending_keys(self) -> List[str]:
        return list(self._pending)

    async def run(self, key: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` once no other operation holds ``key``.

        Args:
            key: Normalized resource key (see workspace_key).
            operation: Zero-argument coroutine function to execute.

        Returns:
            Whatever ``operation`` returns.
        """
        while key in self._pending:
            logger.info(
                "Waiting for in-flight workspace operation",
                extra={"key": key},
            )
            await self._pending[key].wait()

        done = asyncio.Event()
        self._pending[key] = done
        try:
            return await operation()
        finally:
            del self._pending[key]
            done.set()
