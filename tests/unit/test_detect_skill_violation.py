#!/usr/bin/env python3
"""Tests for detect_skill_violation.py - raw gh usage scanner."""

from pathlib import Path

import detect_skill_violation
import pytest
from bv_schema import SchemaRegistry
from detect_skill_violation import (
    DEFAULT_SKILLS_PATH,
    NO_VIOLATIONS,
    VIOLATIONS_FOUND,
    build_skill_violation_remediation,
    capability_gaps,
    detect_from_content,
    detect_skill_violations,
    extract_gh_command,
    get_skill_violation_result_errors,
    scan_content,
    scan_file,
)

PR_PATTERN = r"gh\s+pr\s+(create|merge|close|view|list|diff)"


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """A repository with a skills directory and two offending files."""
    (tmp_path / DEFAULT_SKILLS_PATH).mkdir(parents=True)
    (tmp_path / "docs").mkdir()
    (tmp_path / "docs" / "a.md").write_text("Intro\nrun gh pr create --fill\nthen gh api repos/x\n")
    (tmp_path / "scripts").mkdir()
    (tmp_path / "scripts" / "b.ps1").write_text("gh issue list --state open\n")
    (tmp_path / "notes.txt").write_text("gh pr view 1\n")
    (tmp_path / "clean.md").write_text("Nothing here\n")
    return tmp_path


class TestScanning:
    """Line-level scanning."""

    def test_scan_content_reports_every_line(self) -> None:
        """Every offending line is reported with its 1-based number."""
        violations = scan_content("x.md", "gh pr merge 1\nok\ngh repo clone a/b\n")
        assert [(v.line, v.command) for v in violations] == [(1, "pr"), (3, "repo")]
        assert violations[0].pattern == PR_PATTERN

    def test_first_pattern_per_line(self) -> None:
        """A line matching two patterns is reported once."""
        violations = scan_content("x.md", "gh pr list && gh api user")
        assert len(violations) == 1
        assert violations[0].pattern == PR_PATTERN

    def test_unlisted_subcommands_ignored(self) -> None:
        """Subcommands outside the patterns are fine."""
        assert scan_content("x.md", "gh pr checkout 3\ngh auth status\n") == []

    def test_extract_gh_command(self) -> None:
        """The word after gh is extracted."""
        assert extract_gh_command("  gh   issue view 2") == "issue"
        assert extract_gh_command("no command") == ""

    def test_describe(self) -> None:
        """Violations render as file:line with the pattern."""
        violation = scan_content("x.md", "gh api /user")[0]
        assert violation.describe() == r"x.md:1 - matches 'gh\s+api\s+'"

    def test_scan_file(self, tmp_path: Path) -> None:
        """Files on disk are scanned with their path as the name."""
        path = tmp_path / "x.ps1"
        path.write_text("gh issue close 4\n")
        assert scan_file(path)[0].file == str(path)

    def test_capability_gaps_sorted_unique(self) -> None:
        """Gaps are the sorted set of subcommands."""
        violations = scan_content("x.md", "gh repo view\ngh pr view\ngh repo list\n")
        assert capability_gaps(violations) == ["pr", "repo"]


class TestRemediation:
    """Remediation text."""

    def test_lists_gaps(self) -> None:
        """Each gap gets its own line."""
        text = build_skill_violation_remediation(["pr"])
        assert "  - gh pr (consider adding to .claude/skills/github/)" in text
        assert text.startswith("These commands indicate missing GitHub skill capabilities.")

    def test_without_gaps(self) -> None:
        """The gap section is omitted when empty."""
        assert "Missing skill capabilities detected:" not in build_skill_violation_remediation([])


class TestRepositoryScan:
    """Repository-level scanning."""

    def test_first_violation_per_file(self, repo: Path) -> None:
        """Only the first offending line of each target file is reported."""
        result = detect_skill_violations(repo_root=repo)
        assert result.valid
        assert result.files_checked == 3
        assert [(v.file, v.line) for v in result.violations] == [("docs/a.md", 2), ("scripts/b.ps1", 1)]
        assert result.capability_gaps == ["issue", "pr"]
        assert result.message == VIOLATIONS_FOUND
        assert [c.blocking for c in result.checks] == [False, False]
        assert result.violation_count == 2

    def test_no_skills_directory(self, tmp_path: Path) -> None:
        """Without a skills directory the scan is skipped."""
        (tmp_path / "a.md").write_text("gh pr create\n")
        result = detect_skill_violations(repo_root=tmp_path)
        assert result.valid
        assert result.message.startswith("GitHub skills directory not found:")
        assert result.files_checked == 0
        assert not result.has_violations

    def test_no_git_root(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Outside a repository the scan is skipped."""
        monkeypatch.setattr(detect_skill_violation, "find_git_root", lambda _: "")
        result = detect_skill_violations(tmp_path)
        assert result.valid
        assert result.message.startswith("Could not find git repository root from:")

    def test_git_root_discovered(self, repo: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """The discovered root is scanned."""
        monkeypatch.setattr(detect_skill_violation, "find_git_root", lambda _: str(repo))
        result = detect_skill_violations(repo / "docs")
        assert result.skills_dir == str(repo / DEFAULT_SKILLS_PATH)
        assert result.violation_count == 2

    def test_staged_only(self, repo: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Staged mode scans only the staged files."""
        monkeypatch.setattr(detect_skill_violation, "staged_targets", lambda _: ["scripts/b.ps1"])
        result = detect_skill_violations(repo_root=repo, staged_only=True)
        assert result.files_checked == 1
        assert [v.file for v in result.violations] == ["scripts/b.ps1"]

    def test_nothing_staged(self, repo: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """An empty staging area has nothing to check."""
        monkeypatch.setattr(detect_skill_violation, "staged_targets", lambda _: [])
        result = detect_skill_violations(repo_root=repo, staged_only=True)
        assert result.message == "No files to check for skill violations"
        assert result.checks == []

    def test_clean_repository(self, tmp_path: Path) -> None:
        """A repository without raw gh usage passes."""
        (tmp_path / DEFAULT_SKILLS_PATH).mkdir(parents=True)
        (tmp_path / "README.md").write_text("# Hi\n")
        result = detect_skill_violations(repo_root=tmp_path)
        assert result.message == NO_VIOLATIONS
        assert result.get_check("skill_violation").passed is True
        assert result.remediation == ""


class TestFromContent:
    """In-memory scanning."""

    def test_sorted_first_per_file(self) -> None:
        """Files are scanned in name order, first violation each."""
        result = detect_from_content({"b.md": "gh api x\ngh repo y\n", "a.md": "fine\ngh pr diff\n"})
        assert [(v.file, v.line) for v in result.violations] == [("a.md", 2), ("b.md", 1)]
        assert result.files_checked == 2

    def test_to_dict(self) -> None:
        """JSON output omits empty optional keys."""
        data = detect_from_content({"a.md": "ok\n"}).to_dict()
        assert data["filesChecked"] == 1
        assert "violations" not in data
        assert "skillsDir" not in data


class TestSkillViolationSchema:
    """Schema validation of scan results."""

    def test_result_conforms(self, repo: Path, registry: SchemaRegistry) -> None:
        """A repository scan result validates."""
        result = detect_skill_violations(repo_root=repo)
        assert get_skill_violation_result_errors(result, registry) == []
