"""Shared fixtures for workspace manager tests."""

import asyncio
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from src.workspaces.errors import AuthError, NotFoundError, ProcessError, RegistryError
from src.workspaces.locks import LockRegistry
from src.workspaces.models import RepositoryRecord
from src.workspaces.paths import GIT_METADATA_DIR, PathResolver


class InMemoryRegistry:
    """Registry double backed by a dict of records."""

    def __init__(self, records: Optional[List[RepositoryRecord]] = None):
        self.records: Dict[str, RepositoryRecord] = {
            record.id: record for record in records or []
        }
        self.fail_listing = False
        self.lookup_error: Optional[Exception] = None
        self.listing_error: Optional[Exception] = None

    async def get_repository(self, repository_id: str) -> RepositoryRecord:
        if self.lookup_error is not None:
            raise self.lookup_error
        try:
            return self.records[repository_id]
        except KeyError:
            raise NotFoundError(repository_id) from None

    async def list_repositories(self, tenant_id: str) -> List[RepositoryRecord]:
        if self.listing_error is not None:
            raise self.listing_error
        if self.fail_listing:
            raise RegistryError("connection refused")
        return [r for r in self.records.values() if r.tenant_id == tenant_id]


class CountingCredentials:
    """Credential provider double issuing sequential tokens."""

    def __init__(self, fail: bool = False, cache_enabled: bool = False):
        self.calls: List[int] = []
        self.forced: List[int] = []
        self.fail = fail
        self.cache_enabled = cache_enabled

    async def get_token(self, installation_id: int, force_refresh: bool = False) -> str:
        self.calls.append(installation_id)
        if force_refresh:
            self.forced.append(installation_id)
        if self.fail:
            raise AuthError(installation_id, "GitHub API error: 401")
        return f"ghs_token{len(self.calls)}"


class FakeGit:
    """GitRunner double that materializes checkouts on disk.

    Records every invocation and the peak number of concurrent
    invocations per target path.
    """

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.calls: List[tuple] = []
        self.remotes: Dict[Path, str] = {}
        self.remote_history: List[str] = []
        self.active: Dict[Path, int] = defaultdict(int)
        self.max_active: Dict[Path, int] = defaultdict(int)
        self.fail_on: Optional[str] = None
        self.fail_message = "fatal: could not read from remote"
        self.fail_times: Optional[int] = None
        self.upstream_commit = "c1"

    async def _enter(self, path: Path, command: str) -> None:
        self.calls.append((command, path))
        self.active[path] += 1
        self.max_active[path] = max(self.max_active[path], self.active[path])
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail_on == command and self.fail_times != 0:
                if self.fail_times is not None:
                    self.fail_times -= 1
                raise ProcessError(
                    command, self.fail_message, returncode=128, stderr=self.fail_message
                )
        finally:
            self.active[path] -= 1

    async def clone(self, remote_url: str, target: Path, branch: str) -> None:
        await self._enter(target, "clone")
        (target / GIT_METADATA_DIR).mkdir(parents=True, exist_ok=True)
        (target / "HEAD_COMMIT").write_text(self.upstream_commit)
        (target / "BRANCH").write_text(branch)
        self.remotes[target] = remote_url
        self.remote_history.append(remote_url)

    async def set_remote_url(self, checkout: Path, remote_url: str) -> None:
        await self._enter(checkout, "remote set-url")
        self.remotes[checkout] = remote_url
        self.remote_history.append(remote_url)

    async def pull(self, checkout: Path) -> None:
        await self._enter(checkout, "pull")
        (checkout / "HEAD_COMMIT").write_text(self.upstream_commit)

    def commands(self) -> List[str]:
        return [command for command, _ in self.calls]


@pytest.fixture
def widgets_record():
    return RepositoryRecord(
        id="R1",
        name="widgets",
        full_name="acme/widgets",
        clone_url="https://github.com/acme/widgets.git",
        default_branch="main",
        installation_id=42,
        tenant_id="T1",
    )


@pytest.fixture
def registry(widgets_record):
    return InMemoryRegistry([widgets_record])


@pytest.fixture
def credentials():
    return CountingCredentials()


@pytest.fixture
def fake_git():
    return FakeGit()


@pytest.fixture
def base_path(tmp_path):
    base = tmp_path / "repos"
    base.mkdir()
    return base


@pytest.fixture
def resolver(base_path):
    return PathResolver(base_path)


@pytest.fixture
def locks():
    return LockRegistry()


@pytest.fixture
def failing_credentials():
    return CountingCredentials(fail=True)


@pytest.fixture
def slow_git():
    return FakeGit(delay=0.05)


@pytest.fixture
def caching_credentials():
    return CountingCredentials(cache_enabled=True)
