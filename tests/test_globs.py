"""Tests for segment-wise path globs."""

from __future__ import annotations

import pytest

from lily_client.globs import glob_match


@pytest.mark.parametrize(
    "path, pattern",
    [
        ("a.lily", "*.lily"),
        ("a.lily", "**/*.lily"),
        ("src/a.lily", "**/*.lily"),
        ("src/deep/a.lily", "**/*.lily"),
        ("src/a.lily", "src/*.lily"),
        ("src/deep/a.lily", "src/**/*.lily"),
        ("src/a.lily", "src/**/*.lily"),
        ("src/a.lily", "src/?.lily"),
        ("src/b.lily", "src/[ab].lily"),
        ("src/a.lily", "src/**"),
    ],
)
def test_matches(path: str, pattern: str):
    assert glob_match(path, pattern)


@pytest.mark.parametrize(
    "path, pattern",
    [
        ("sub/a.lily", "*.lily"),
        ("src/deep/a.lily", "src/*.lily"),
        ("other/src/a.lily", "src/*.lily"),
        ("src/a.lily", "src/a.lil"),
        ("src/a.md", "**/*.lily"),
        ("src/ab.lily", "src/?.lily"),
        ("src", "src/*.lily"),
    ],
)
def test_rejects(path: str, pattern: str):
    assert not glob_match(path, pattern)
