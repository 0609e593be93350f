#!/usr/bin/env python3
"""Tests for bv_fsprobe.py - filesystem probes and git shell-outs."""

import subprocess
from pathlib import Path

import pytest
from bv_fsprobe import (
    dir_exists,
    file_exists,
    find_git_root,
    has_target_suffix,
    list_markdown,
    read_text,
    run_git,
    staged_targets,
    walk_files,
    walk_targets,
)


class TestExistence:
    """Existence tests and reads."""

    def test_file_and_dir(self, tmp_path: Path) -> None:
        """file_exists and dir_exists distinguish files from directories."""
        (tmp_path / "a.md").write_text("x")
        assert file_exists(tmp_path / "a.md")
        assert not file_exists(tmp_path)
        assert dir_exists(tmp_path)
        assert not dir_exists(tmp_path / "a.md")

    def test_read_text_missing_is_none(self, tmp_path: Path) -> None:
        """Unreadable files return None instead of raising."""
        assert read_text(tmp_path / "missing.md") is None

    def test_read_text_invalid_utf8_is_none(self, tmp_path: Path) -> None:
        """Bytes that are not UTF-8 count as unreadable."""
        path = tmp_path / "bin.md"
        path.write_bytes(b"\xff\xfe\xfa")
        assert read_text(path) is None


class TestWalks:
    """Recursive walks with skip rules."""

    def test_walk_skips_git_and_node_modules(self, tmp_path: Path) -> None:
        """Skipped directories are never descended into."""
        for rel in ("README.md", "docs/guide.md", ".git/HEAD.md", "node_modules/pkg/readme.md", "src/tool.ps1"):
            path = tmp_path / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("x")
        assert walk_files(tmp_path) == ["README.md", "docs/guide.md", "src/tool.ps1"]

    def test_walk_targets_filters_suffixes(self, tmp_path: Path) -> None:
        """Only markdown and PowerShell files are targets."""
        for rel in ("a.md", "b.PS1", "c.psm1", "d.py", "e.txt"):
            (tmp_path / rel).write_text("x")
        assert walk_targets(tmp_path) == ["a.md", "b.PS1", "c.psm1"]

    def test_walk_missing_root(self, tmp_path: Path) -> None:
        """A missing root yields nothing."""
        assert walk_files(tmp_path / "nope") == []

    def test_list_markdown_is_flat_and_sorted(self, tmp_path: Path) -> None:
        """list_markdown does not recurse."""
        (tmp_path / "b.md").write_text("x")
        (tmp_path / "a.md").write_text("x")
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "c.md").write_text("x")
        assert [p.name for p in list_markdown(tmp_path)] == ["a.md", "b.md"]

    def test_has_target_suffix_case_insensitive(self) -> None:
        """Suffix checks ignore case."""
        assert has_target_suffix("Script.PSM1")
        assert not has_target_suffix("notes.markdown")


class TestGit:
    """git shell-outs degrade to empty results."""

    def test_run_git_missing_binary(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """A missing git executable returns None."""

        def raise_missing(*args: object, **kwargs: object) -> None:
            raise FileNotFoundError("git")

        monkeypatch.setattr(subprocess, "run", raise_missing)
        assert run_git(tmp_path, "status") is None
        assert find_git_root(tmp_path) == ""
        assert staged_targets(tmp_path) == []

    def test_run_git_timeout(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """A hung git call returns None."""

        def raise_timeout(*args: object, **kwargs: object) -> None:
            raise subprocess.TimeoutExpired(cmd="git", timeout=30)

        monkeypatch.setattr(subprocess, "run", raise_timeout)
        assert run_git(tmp_path, "status") is None

    def test_staged_targets_filters_output(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Staged paths are filtered to target extensions."""
        calls: list[list[str]] = []

        def fake_run(cmd: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
            calls.append(cmd)
            return subprocess.CompletedProcess(cmd, 0, stdout="a.md\nb.py\n\nsub/c.ps1\n", stderr="")

        monkeypatch.setattr(subprocess, "run", fake_run)
        assert staged_targets(tmp_path) == ["a.md", "sub/c.ps1"]
        assert calls[0] == ["git", "-C", str(tmp_path), "diff", "--cached", "--name-only", "--diff-filter=ACMR"]

    def test_find_git_root_strips_output(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """The top-level path is returned without the trailing newline."""
        monkeypatch.setattr(
            subprocess,
            "run",
            lambda cmd, **kw: subprocess.CompletedProcess(cmd, 0, stdout="/repo\n", stderr=""),
        )
        assert find_git_root(tmp_path) == "/repo"

    def test_nonzero_exit_is_none(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Outside a repository git exits non-zero and the root is empty."""
        monkeypatch.setattr(
            subprocess,
            "run",
            lambda cmd, **kw: subprocess.CompletedProcess(cmd, 128, stdout="", stderr="fatal"),
        )
        assert find_git_root(tmp_path) == ""
