#!/usr/bin/env python3
"""
Brain Validation - Filesystem Probes

Read-only helpers shared by the validators: existence tests, recursive walks
with skip rules, and the two git shell-outs (repository root discovery and
staged-file listing). Every probe degrades to an empty result instead of
raising when the environment is missing something.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Iterable

from bv_validation_common import SKIP_DIRS

logger = logging.getLogger(__name__)

# Extensions scanned for discouraged shell usage
TARGET_SUFFIXES = (".md", ".ps1", ".psm1")

GIT_TIMEOUT_SECONDS = 30


# =============================================================================
# Existence Tests
# =============================================================================


def file_exists(path: str | Path) -> bool:
    try:
        return Path(path).is_file()
    except OSError:
        return False


def dir_exists(path: str | Path) -> bool:
    try:
        return Path(path).is_dir()
    except OSError:
        return False


def read_text(path: str | Path) -> str | None:
    """Read a UTF-8 text file, returning None when it cannot be read."""
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("Cannot read %s: %s", path, e)
        return None


# =============================================================================
# Git Shell-outs
# =============================================================================


def run_git(directory: str | Path, *args: str) -> str | None:
    """Run ``git -C <directory> <args>`` and return stdout, or None on failure."""
    try:
        result = subprocess.run(
            ["git", "-C", str(directory), *args],
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT_SECONDS,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError) as e:
        logger.debug("git %s failed in %s: %s", " ".join(args), directory, e)
        return None
    if result.returncode != 0:
        logger.debug("git %s exited %d in %s", " ".join(args), result.returncode, directory)
        return None
    return result.stdout


def find_git_root(start_dir: str | Path) -> str:
    """Return the absolute repository top level containing start_dir, or ""."""
    output = run_git(start_dir, "rev-parse", "--show-toplevel")
    return output.strip() if output else ""


def has_target_suffix(path: str, suffixes: Iterable[str] = TARGET_SUFFIXES) -> bool:
    lowered = path.lower()
    return any(lowered.endswith(s) for s in suffixes)


def staged_targets(repo_root: str | Path, suffixes: Iterable[str] = TARGET_SUFFIXES) -> list[str]:
    """Relative paths of staged added/copied/modified/renamed files with a target extension."""
    output = run_git(repo_root, "diff", "--cached", "--name-only", "--diff-filter=ACMR")
    if not output:
        return []
    wanted = tuple(suffixes)
    return [line.strip() for line in output.splitlines() if line.strip() and has_target_suffix(line.strip(), wanted)]


# =============================================================================
# Directory Walks
# =============================================================================


def walk_files(
    root: str | Path,
    suffixes: Iterable[str] | None = None,
    skip_dirs: Iterable[str] = SKIP_DIRS,
) -> list[str]:
    """Recursively list files under root.

    Args:
        root: Directory to walk
        suffixes: Keep only files ending with one of these (None keeps all)
        skip_dirs: Directory names never descended into

    Returns:
        Sorted paths relative to root, using forward slashes
    """
    root_path = Path(root)
    if not root_path.is_dir():
        return []

    skip = set(skip_dirs)
    wanted = tuple(suffixes) if suffixes is not None else None
    found: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root_path):
        dirnames[:] = [d for d in dirnames if d not in skip]
        rel_dir = Path(dirpath).relative_to(root_path)
        for name in filenames:
            if wanted is not None and not has_target_suffix(name, wanted):
                continue
            found.append((rel_dir / name).as_posix() if str(rel_dir) != "." else name)
    return sorted(found)


def walk_targets(repo_root: str | Path) -> list[str]:
    """All markdown and PowerShell files in the repository, skipping .git and node_modules."""
    return walk_files(repo_root, TARGET_SUFFIXES)


def list_markdown(directory: str | Path) -> list[Path]:
    """Non-recursive, sorted listing of ``*.md`` files in a directory."""
    dir_path = Path(directory)
    if not dir_path.is_dir():
        return []
    return sorted(p for p in dir_path.glob("*.md") if p.is_file())
