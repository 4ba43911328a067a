"""Unit tests for workspace path resolution and identifier sanitization."""

from pathlib import Path

import pytest

from src.workspaces.errors import FilesystemError
from src.workspaces.paths import PathResolver, sanitize_identifier


class TestSanitizeIdentifier:

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("+1 (555) 123-4567", "1_555_123_4567"),
            ("5551234567", "5551234567"),
            ("__a__b__", "a_b"),
            ("user@example.com", "user_example_com"),
            ("", ""),
            ("+-()", ""),
            ("ünïcode", "n_code"),
        ],
    )
    def test_examples(self, raw, expected):
        assert sanitize_identifier(raw) == expected


class TestFlatPath:

    def test_with_tenant(self, resolver, base_path):
        assert resolver.flat_path("widgets", "T1") == base_path / "T1" / "widgets"

    def test_without_tenant(self, resolver, base_path):
        assert resolver.flat_path("widgets") == base_path / "widgets"

    def test_is_pure(self, resolver, base_path):
        resolver.flat_path("widgets", "T1")
        assert list(base_path.iterdir()) == []

    @pytest.mark.parametrize("bad", ["", ".", "..", "a/b", "a\\b"])
    def test_rejects_unsafe_repository_names(self, resolver, bad):
        with pytest.raises(FilesystemError):
            resolver.flat_path(bad, "T1")

    @pytest.mark.parametrize("bad", ["", "..", "T1/../T2"])
    def test_rejects_unsafe_tenants(self, resolver, bad):
        with pytest.raises(FilesystemError):
            resolver.flat_path("widgets", bad)


class TestStructuredPath:

    def test_layout(self, tmp_path):
        resolver = PathResolver(tmp_path / "flat", tmp_path / "steer")
        assert resolver.structured_path("widgets", "T1", "+1 (555) 123-4567") == (
            tmp_path / "steer" / "T1" / "1_555_123_4567" / "widgets"
        )

    def test_defaults_to_flat_base(self, resolver, base_path):
        assert resolver.structured_path("widgets", "T1", "555") == (
            base_path / "T1" / "555" / "widgets"
        )

    def test_empty_sanitized_phone_is_rejected(self, resolver):
        with pytest.raises(FilesystemError, match="user path segment"):
            resolver.structured_path("widgets", "T1", "()")


class TestTenantDirectory:

    def test_tenant_directory(self, resolver, base_path):
        assert resolver.tenant_directory("T1") == base_path / "T1"

    def test_rejects_unsafe_tenant(self, resolver):
        with pytest.raises(FilesystemError):
            resolver.tenant_directory("..")


class TestEnsureDirectory:

    def test_creates_parents(self, tmp_path):
        target = tmp_path / "a" / "b" / "c"
        assert PathResolver.ensure_directory(target) == target
        assert target.is_dir()

    def test_existing_directory_is_fine(self, tmp_path):
        PathResolver.ensure_directory(tmp_path)
        assert tmp_path.is_dir()

    def test_failure_raises_filesystem_error(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with pytest.raises(FilesystemError, match="Failed to create directory"):
            PathResolver.ensure_directory(blocker / "child")


class TestIsCheckout:

    def test_detects_metadata_directory(self, tmp_path):
        (tmp_path / "repo" / ".git").mkdir(parents=True)
        assert PathResolver.is_checkout(tmp_path / "repo")
        assert not PathResolver.is_checkout(tmp_path)
        assert not PathResolver.is_checkout(Path(tmp_path / "missing"))
