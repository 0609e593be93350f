#!/usr/bin/env python3
"""Tests for validate_memory_index.py - tiered memory index rules."""

from pathlib import Path

from bv_schema import SchemaRegistry
from validate_memory_index import (
    IndexEntry,
    find_orphaned_files,
    get_domain_indices,
    get_index_entry_errors,
    parse_index_entries,
    round_half_up,
    validate_duplicate_entries,
    validate_file_references,
    validate_index_format,
    validate_keyword_density,
    validate_memory_index,
    validate_memory_index_from_content,
    validate_memory_index_references,
    validate_minimum_keywords,
)

GIT_INDEX = (
    "| Keywords | File |\n"
    "|----------|------|\n"
    "| git rebase fetch branch remote | git-rebase |\n"
    "| git merge conflict resolve strategy | git-merge |\n"
)

ROOT_INDEX = "| Domain | File |\n|--------|------|\n| Git | skills-git-index |\n"


def entry(keywords: str, file_name: str) -> IndexEntry:
    return IndexEntry(keywords=keywords.split(), file_name=file_name, raw_keywords=keywords)


class TestParsing:
    """Table parsing and index discovery."""

    def test_header_and_separator_skipped(self) -> None:
        """Only data rows become entries."""
        entries = parse_index_entries(GIT_INDEX)
        assert [e.file_name for e in entries] == ["git-rebase", "git-merge"]
        assert entries[0].keywords == ["git", "rebase", "fetch", "branch", "remote"]

    def test_domain_indices_sorted(self, tmp_path: Path) -> None:
        """Domain indexes are discovered by name and carry their domain."""
        (tmp_path / "skills-pr-index.md").write_text("")
        (tmp_path / "skills-git-index.md").write_text("")
        (tmp_path / "git-rebase.md").write_text("")
        assert [(i.name, i.domain) for i in get_domain_indices(tmp_path)] == [
            ("skills-git-index", "git"),
            ("skills-pr-index", "pr"),
        ]


class TestKeywordDensity:
    """Unique keyword ratio per entry."""

    def test_two_entries_sharing_one_keyword(self) -> None:
        """Two of three keywords unique rounds to 0.67."""
        result = validate_keyword_density([entry("a b c", "x"), entry("a d e", "y")])
        assert result.passed
        assert result.densities == {"x": 0.67, "y": 0.67}

    def test_low_density_fails(self) -> None:
        """Below 40% uniqueness is a failure with a percentage."""
        result = validate_keyword_density([entry("a b c", "x"), entry("a b d", "y")])
        assert not result.passed
        assert result.densities["x"] == 0.33
        assert "Low keyword uniqueness: x has 33% unique keywords (need >=40%)" in result.issues

    def test_case_insensitive(self) -> None:
        """Keywords compare case-insensitively."""
        result = validate_keyword_density([entry("Git Rebase", "x"), entry("git merge", "y")])
        assert result.densities == {"x": 0.5, "y": 0.5}

    def test_single_entry(self) -> None:
        """A lone entry is fully unique."""
        assert validate_keyword_density([entry("a", "x")]).densities == {"x": 1.0}

    def test_round_half_up(self) -> None:
        """Halves round away from zero."""
        assert round_half_up(0.125) == 0.13
        assert round_half_up(0.5) == 0.5


class TestIndexFormat:
    """Pure-table enforcement."""

    def test_title_line(self) -> None:
        """A title on line 1 is the only violation."""
        result = validate_index_format("# Title\n\n| kw | file |\n")
        assert result.violation_lines == [1]
        assert result.issues == ["Line 1: Title detected - '# Title' (prohibited per ADR-017)"]

    def test_metadata_navigation_and_trailing_prose(self) -> None:
        """Each prohibited line kind is reported with its number."""
        content = "**Status**: draft\nParent: memory-index\n| a | b |\nSome prose\n"
        result = validate_index_format(content)
        assert result.violation_lines == [1, 2, 4]
        assert "Metadata block" in result.issues[0]
        assert "Navigation section" in result.issues[1]
        assert "Non-table content" in result.issues[2]

    def test_pure_table_passes(self) -> None:
        """A bare table has no violations."""
        assert validate_index_format(GIT_INDEX).passed


class TestOtherRules:
    """References, duplicates and keyword counts."""

    def test_file_references(self) -> None:
        """Missing files and the deprecated prefix both fail."""
        result = validate_file_references(
            [entry("a", "git-ok"), entry("b", "git-gone"), entry("c", "skill-old")],
            {"git-ok", "skill-old"}.__contains__,
        )
        assert result.valid_files == ["git-ok", "skill-old"]
        assert result.missing_files == ["git-gone"]
        assert result.naming_violations == ["skill-old"]
        assert "Missing file: git-gone.md" in result.issues

    def test_duplicates_reported_once(self) -> None:
        """A file listed three times is one duplicate."""
        result = validate_duplicate_entries([entry("a", "x"), entry("b", "x"), entry("c", "x")])
        assert result.duplicates == ["x"]
        assert len(result.issues) == 1

    def test_minimum_keywords(self) -> None:
        """Fewer than five keywords fails the warning rule."""
        result = validate_minimum_keywords([entry("a b", "x")])
        assert result.keyword_counts == {"x": 2}
        assert result.issues == ["Insufficient keywords: x has 2 keywords (need >=5)"]


class TestRepositoryRules:
    """Root index and orphan detection."""

    def test_missing_root_index(self) -> None:
        """No memory-index.md is critical."""
        result = validate_memory_index_references(None, ["skills-git-index"], lambda _: True)
        assert result.issues == ["CRITICAL: memory-index.md not found - required for tiered architecture"]

    def test_unreferenced_and_broken(self) -> None:
        """Unlisted domain indexes and dangling references both fail."""
        root = "| Domain | File |\n|---|---|\n| Git | skills-git-index, git-gone |\n"
        result = validate_memory_index_references(
            root, ["skills-git-index", "skills-pr-index"], {"skills-git-index"}.__contains__
        )
        assert result.unreferenced_indices == ["skills-pr-index"]
        assert result.broken_references == ["git-gone"]

    def test_orphans(self) -> None:
        """Unreferenced atomic files and bad names are orphans; indexes are not."""
        orphans = find_orphaned_files(
            ["git-rebase", "git-stale", "skill-legacy", "skills-misc", "memory-index", "skills-git-index"],
            ["git"],
            {"git-rebase"},
        )
        assert [(o.file, o.domain) for o in orphans] == [
            ("git-stale", "git"),
            ("skill-legacy", "INVALID"),
            ("skills-misc", "INVALID"),
        ]
        assert orphans[0].expected_index == "skills-git-index"


class TestFromContent:
    """String-based validation."""

    def test_structure_only(self) -> None:
        """Without existing files only structural rules run."""
        result = validate_memory_index_from_content({"git": GIT_INDEX})
        assert result.valid
        assert result.memory_index_result is None
        assert result.get_check("orphaned_files") is None
        assert result.summary.total_files == 2

    def test_full_run_with_orphan(self) -> None:
        """An orphan only warns."""
        existing = {"git-rebase", "git-merge", "git-stale", "skills-git-index", "memory-index"}
        result = validate_memory_index_from_content({"git": GIT_INDEX}, ROOT_INDEX, existing)
        assert result.valid
        assert result.message == "Memory index validation passed"
        assert [o.file for o in result.orphans] == ["git-stale"]
        assert result.get_check("orphaned_files").passed is False
        assert result.densities == {"git": {"git-rebase": 0.8, "git-merge": 0.8}}

    def test_failed_domain_remediation(self) -> None:
        """A missing referenced file fails the domain and names the count."""
        existing = {"git-rebase", "skills-git-index"}
        result = validate_memory_index_from_content({"git": GIT_INDEX}, ROOT_INDEX, existing)
        assert not result.valid
        assert result.summary.failed_domains == 1
        assert result.summary.missing_files == 1
        assert result.remediation.startswith("Fix the following: 1 domain index(es) failed validation")

    def test_to_dict(self) -> None:
        """JSON output nests per-domain results."""
        data = validate_memory_index_from_content({"git": GIT_INDEX}).to_dict()
        assert data["domainResults"]["git"]["passed"] is True
        assert data["summary"]["totalDomains"] == 1


class TestOnDisk:
    """Directory validation."""

    def test_missing_directory(self, tmp_path: Path) -> None:
        """A missing directory fails memory_path_exists."""
        result = validate_memory_index(tmp_path / "missing")
        assert not result.valid
        assert result.get_check("memory_path_exists").passed is False

    def test_valid_directory(self, tmp_path: Path) -> None:
        """A consistent directory passes."""
        (tmp_path / "skills-git-index.md").write_text(GIT_INDEX)
        (tmp_path / "memory-index.md").write_text(ROOT_INDEX)
        (tmp_path / "git-rebase.md").write_text("# Rebase\n")
        (tmp_path / "git-merge.md").write_text("# Merge\n")
        result = validate_memory_index(tmp_path)
        assert result.valid
        assert result.get_check("memory_index_references").passed is True
        assert result.orphans == []

    def test_repeated_runs_agree(self, tmp_path: Path) -> None:
        """Two runs over the same tree report the same totals and densities."""
        (tmp_path / "skills-git-index.md").write_text(GIT_INDEX)
        (tmp_path / "skills-ci-index.md").write_text(
            "| Keywords | File |\n|----------|------|\n| ci pipeline cache matrix | ci-cache |\n"
        )
        (tmp_path / "memory-index.md").write_text(ROOT_INDEX + "| CI | skills-ci-index |\n")
        for name in ("git-rebase", "git-merge", "ci-cache"):
            (tmp_path / f"{name}.md").write_text(f"# {name}\n")

        first = validate_memory_index(tmp_path)
        second = validate_memory_index(tmp_path)
        assert first.summary.total_domains == second.summary.total_domains == 2
        assert first.summary.total_files == second.summary.total_files
        assert first.densities == second.densities
        assert list(first.densities) == list(second.densities)
        assert [c.name for c in first.checks] == [c.name for c in second.checks]


class TestEntrySchema:
    """Schema validation of entries."""

    def test_valid_entry(self, registry: SchemaRegistry) -> None:
        """A normal entry conforms."""
        assert get_index_entry_errors(entry("git rebase", "git-rebase"), registry) == []

    def test_empty_keywords(self, registry: SchemaRegistry) -> None:
        """Entries need at least one keyword."""
        errors = get_index_entry_errors(IndexEntry(keywords=[], file_name="x"), registry)
        assert [e.constraint for e in errors] == ["minItems"]
