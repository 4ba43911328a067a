"""Property-based tests for identifier sanitization and path addressing.

Testing Configuration:
- Library: Hypothesis (Python)
- Minimum iterations: 100 per property test
"""

import re
import tempfile
from pathlib import Path

from hypothesis import given, settings, strategies as st

from src.workspaces.paths import PathResolver, sanitize_identifier

SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9_]*$")


@st.composite
def phone_number(draw):
    return draw(st.text(alphabet=st.sampled_from("0123456789 +-()."), min_size=0, max_size=20))


@st.composite
def segment_name(draw):
    return draw(st.text(
        alphabet=st.sampled_from(
            "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-_"),
        min_size=1, max_size=30))


class TestSanitizationProperties:
    """*For any* string, sanitization SHALL be deterministic, total, and
    produce only word characters without edge or repeated underscores."""

    @given(raw=st.text(max_size=50))
    @settings(max_examples=100)
    def test_output_only_contains_word_characters(self, raw):
        assert SAFE_SEGMENT.match(sanitize_identifier(raw))

    @given(raw=st.text(max_size=50))
    @settings(max_examples=100)
    def test_deterministic(self, raw):
        assert sanitize_identifier(raw) == sanitize_identifier(raw)

    @given(raw=st.text(max_size=50))
    @settings(max_examples=100)
    def test_idempotent(self, raw):
        once = sanitize_identifier(raw)
        assert sanitize_identifier(once) == once

    @given(raw=st.text(max_size=50))
    @settings(max_examples=100)
    def test_no_edge_or_repeated_underscores(self, raw):
        result = sanitize_identifier(raw)
        assert not result.startswith("_")
        assert not result.endswith("_")
        assert "__" not in result

    @given(raw=phone_number())
    @settings(max_examples=100)
    def test_phone_digits_are_preserved_in_order(self, raw):
        digits = "".join(c for c in raw if c.isdigit())
        assert sanitize_identifier(raw).replace("_", "") == digits


class TestAddressingProperties:
    """*For any* identity, resolution SHALL be stable and stay under the base."""

    @given(repo=segment_name(), tenant=segment_name())
    @settings(max_examples=100)
    def test_flat_path_is_stable_and_contained(self, repo, tenant):
        with tempfile.TemporaryDirectory() as tmpdir:
            resolver = PathResolver(Path(tmpdir))
            first = resolver.flat_path(repo, tenant)
            assert first == resolver.flat_path(repo, tenant)
            assert first.parent.parent == Path(tmpdir)

    @given(repo=segment_name(), tenant=segment_name(), phone=phone_number())
    @settings(max_examples=100)
    def test_structured_path_is_stable_when_valid(self, repo, tenant, phone):
        if not sanitize_identifier(phone):
            return
        resolver = PathResolver(Path("/srv/flat"), Path("/srv/steer"))
        path = resolver.structured_path(repo, tenant, phone)
        assert path == resolver.structured_path(repo, tenant, phone)
        assert path.parents[2] == Path("/srv/steer")
