#!/usr/bin/env python3
"""
Brain Validation - Memory Index Validator

Validates the tiered memory architecture (ADR-017): a root ``memory-index.md``
that references every domain index, domain indexes ``skills-<domain>-index.md``
that are pure keyword -> file lookup tables, and a flat directory of atomic
``<domain>-<description>.md`` files.

Per-domain rules:
    file_references      (blocking) every entry resolves to <memory>/<file>.md
    keyword_density      (blocking) every entry has >= 40% unique keywords
    index_format         (blocking) no titles, metadata, navigation or prose
    duplicate_entries    (blocking) each file listed once
    minimum_keywords     (warning)  each entry has >= 5 keywords
    domain_prefix_naming (warning)  each file starts with "<domain>-"

Repository rules:
    memory_index_references (blocking) root index exists, lists every domain
                                       index, and only references existing files
    orphaned_files          (warning)  atomic files no index references
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping

from bv_fsprobe import dir_exists, file_exists, list_markdown, read_text
from bv_schema import SchemaRegistry, get_schema
from bv_validation_common import RuleResult, ValidationError, ValidationResult

logger = logging.getLogger(__name__)

# =============================================================================
# Memory-Index Constants
# =============================================================================

MEMORY_INDEX_NAME = "memory-index"

DOMAIN_INDEX_GLOB = "skills-*-index.md"
DOMAIN_INDEX_PATTERN = re.compile(r"^skills-(.+)-index$")

TABLE_ENTRY_PATTERN = re.compile(r"^\|\s*([^|]+)\s*\|\s*([^|]+)\s*\|$")
TABLE_ROW_PATTERN = re.compile(r"^\|.*\|$")

TITLE_PATTERN = re.compile(r"^#+\s+")
METADATA_PATTERN = re.compile(r"^\*\*[^*]+\*\*:\s*")
NAVIGATION_PATTERN = re.compile(r"^Parent:\s*|^>\s*\[.*\]")

# Cells in the root index table that are headers, not file references
ROOT_INDEX_HEADER_CELLS = frozenset({"File", "Essential Memories", "Memory"})

MIN_KEYWORD_DENSITY = 0.40
MIN_KEYWORDS = 5


# =============================================================================
# Types
# =============================================================================


@dataclass
class IndexEntry:
    """One keyword -> file row of a domain index."""

    keywords: list[str]
    file_name: str
    raw_keywords: str = ""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"keywords": list(self.keywords), "fileName": self.file_name}
        if self.raw_keywords:
            result["rawKeywords"] = self.raw_keywords
        return result


@dataclass
class DomainIndex:
    path: str
    name: str
    domain: str


@dataclass
class FileReferenceResult(RuleResult):
    missing_files: list[str] = field(default_factory=list)
    valid_files: list[str] = field(default_factory=list)
    naming_violations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["missingFiles"] = list(self.missing_files)
        base["validFiles"] = list(self.valid_files)
        base["namingViolations"] = list(self.naming_violations)
        return base


@dataclass
class KeywordDensityResult(RuleResult):
    densities: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["densities"] = dict(self.densities)
        return base


@dataclass
class IndexFormatResult(RuleResult):
    violation_lines: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["violationLines"] = list(self.violation_lines)
        return base


@dataclass
class DuplicateResult(RuleResult):
    duplicates: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["duplicates"] = list(self.duplicates)
        return base


@dataclass
class MinKeywordResult(RuleResult):
    keyword_counts: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["keywordCounts"] = dict(self.keyword_counts)
        return base


@dataclass
class PrefixNamingResult(RuleResult):
    non_conforming: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["nonConforming"] = list(self.non_conforming)
        return base


@dataclass
class MemoryIndexReferenceResult(RuleResult):
    unreferenced_indices: list[str] = field(default_factory=list)
    broken_references: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["unreferencedIndices"] = list(self.unreferenced_indices)
        base["brokenReferences"] = list(self.broken_references)
        return base


@dataclass
class DomainIndexResult:
    """All rule outcomes for one domain index. ``passed`` covers blocking rules only."""

    index_path: str = ""
    entries: int = 0
    file_references: FileReferenceResult = field(default_factory=FileReferenceResult)
    keyword_density: KeywordDensityResult = field(default_factory=KeywordDensityResult)
    index_format: IndexFormatResult = field(default_factory=IndexFormatResult)
    duplicate_entries: DuplicateResult = field(default_factory=DuplicateResult)
    minimum_keywords: MinKeywordResult = field(default_factory=MinKeywordResult)
    domain_prefix_naming: PrefixNamingResult = field(default_factory=PrefixNamingResult)

    @property
    def passed(self) -> bool:
        return (
            self.file_references.passed
            and self.keyword_density.passed
            and self.index_format.passed
            and self.duplicate_entries.passed
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "indexPath": self.index_path,
            "entries": self.entries,
            "fileReferences": self.file_references.to_dict(),
            "keywordDensity": self.keyword_density.to_dict(),
            "indexFormat": self.index_format.to_dict(),
            "duplicateEntries": self.duplicate_entries.to_dict(),
            "minimumKeywords": self.minimum_keywords.to_dict(),
            "domainPrefixNaming": self.domain_prefix_naming.to_dict(),
            "passed": self.passed,
        }


@dataclass
class OrphanedFile:
    file: str
    domain: str
    expected_index: str

    def to_dict(self) -> dict[str, str]:
        return {"file": self.file, "domain": self.domain, "expectedIndex": self.expected_index}


@dataclass
class MemoryIndexSummary:
    total_domains: int = 0
    passed_domains: int = 0
    failed_domains: int = 0
    total_files: int = 0
    missing_files: int = 0
    keyword_issues: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "totalDomains": self.total_domains,
            "passedDomains": self.passed_domains,
            "failedDomains": self.failed_domains,
            "totalFiles": self.total_files,
            "missingFiles": self.missing_files,
            "keywordIssues": self.keyword_issues,
        }


@dataclass
class MemoryIndexResult(ValidationResult):
    """Validation result for a memory directory, extends ValidationResult with per-domain detail."""

    memory_path: str = ""
    domain_results: dict[str, DomainIndexResult] = field(default_factory=dict)
    memory_index_result: MemoryIndexReferenceResult | None = None
    orphans: list[OrphanedFile] = field(default_factory=list)
    summary: MemoryIndexSummary = field(default_factory=MemoryIndexSummary)

    @property
    def densities(self) -> dict[str, dict[str, float]]:
        """Keyword densities per domain, keyed by file name."""
        return {d: dict(r.keyword_density.densities) for d, r in self.domain_results.items()}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        base = super().to_dict()
        base["memoryPath"] = self.memory_path
        base["domainResults"] = {d: r.to_dict() for d, r in self.domain_results.items()}
        if self.memory_index_result is not None:
            base["memoryIndexResult"] = self.memory_index_result.to_dict()
        base["orphans"] = [o.to_dict() for o in self.orphans]
        base["summary"] = self.summary.to_dict()
        return base


# =============================================================================
# Parsing Functions
# =============================================================================


def parse_index_entries(content: str) -> list[IndexEntry]:
    """Extract keyword -> file rows from a markdown table, skipping header and separator rows."""
    entries: list[IndexEntry] = []
    for line in content.split("\n"):
        match = TABLE_ENTRY_PATTERN.match(line)
        if not match:
            continue
        keywords = match.group(1).strip()
        file_name = match.group(2).strip()
        if keywords == "Keywords" or keywords.startswith("-"):
            continue
        if file_name.startswith("-"):
            continue
        entries.append(IndexEntry(keywords=keywords.split(), file_name=file_name, raw_keywords=keywords))
    return entries


def get_domain_indices(memory_path: str | Path) -> list[DomainIndex]:
    """Discover ``skills-<domain>-index.md`` files, sorted by name."""
    indices: list[DomainIndex] = []
    for path in sorted(Path(memory_path).glob(DOMAIN_INDEX_GLOB)):
        match = DOMAIN_INDEX_PATTERN.match(path.stem)
        if match:
            indices.append(DomainIndex(path=str(path), name=path.stem, domain=match.group(1)))
    return indices


# =============================================================================
# Per-Domain Rules
# =============================================================================


def round_half_up(value: float, digits: int = 2) -> float:
    scale = 10**digits
    return math.floor(value * scale + 0.5) / scale


def validate_file_references(entries: list[IndexEntry], exists: Callable[[str], bool]) -> FileReferenceResult:
    """Every entry must resolve to an existing atomic file and avoid the 'skill-' prefix."""
    result = FileReferenceResult()
    for entry in entries:
        if entry.file_name.startswith("skill-"):
            result.naming_violations.append(entry.file_name)
            result.fail(f"Index references deprecated 'skill-' prefix: {entry.file_name}.md (ADR-017 violation)")
        if exists(entry.file_name):
            result.valid_files.append(entry.file_name)
        else:
            result.missing_files.append(entry.file_name)
            result.fail(f"Missing file: {entry.file_name}.md")
    return result


def validate_keyword_density(entries: list[IndexEntry]) -> KeywordDensityResult:
    """Each entry must have at least 40% keywords not used by any other entry.

    Keyword sets are lowercased and keyed by file name. A lone entry is
    unique by definition and gets density 1.0.
    """
    result = KeywordDensityResult()
    if len(entries) < 2:
        if entries:
            result.densities[entries[0].file_name] = 1.0
        return result

    keyword_sets: dict[str, set[str]] = {}
    for entry in entries:
        keyword_sets[entry.file_name] = {kw.lower() for kw in entry.keywords}

    for entry in entries:
        mine = keyword_sets[entry.file_name]
        others: set[str] = set()
        for other_name, other_set in keyword_sets.items():
            if other_name != entry.file_name:
                others |= other_set

        density = round_half_up(len(mine - others) / len(mine)) if mine else 0.0
        result.densities[entry.file_name] = density
        if density < MIN_KEYWORD_DENSITY:
            result.fail(
                f"Low keyword uniqueness: {entry.file_name} has {round(density * 100)}% unique keywords (need >=40%)"
            )
    return result


def validate_index_format(content: str) -> IndexFormatResult:
    """An index must be a pure lookup table: no titles, metadata, navigation or trailing prose."""
    result = IndexFormatResult()
    table_seen = False
    for line_number, line in enumerate(content.split("\n"), start=1):
        stripped = line.strip()
        if not stripped:
            continue

        if TITLE_PATTERN.match(stripped):
            kind = "Title"
        elif METADATA_PATTERN.match(stripped):
            kind = "Metadata block"
        elif NAVIGATION_PATTERN.match(stripped):
            kind = "Navigation section"
        elif TABLE_ROW_PATTERN.match(stripped):
            table_seen = True
            continue
        elif table_seen:
            kind = "Non-table content"
        else:
            continue

        result.violation_lines.append(line_number)
        result.fail(f"Line {line_number}: {kind} detected - '{stripped}' (prohibited per ADR-017)")
    return result


def validate_duplicate_entries(entries: list[IndexEntry]) -> DuplicateResult:
    result = DuplicateResult()
    seen: set[str] = set()
    for entry in entries:
        if entry.file_name in seen and entry.file_name not in result.duplicates:
            result.duplicates.append(entry.file_name)
            result.fail(f"Duplicate entry: {entry.file_name} appears multiple times in index")
        seen.add(entry.file_name)
    return result


def validate_minimum_keywords(entries: list[IndexEntry], min_keywords: int = MIN_KEYWORDS) -> MinKeywordResult:
    result = MinKeywordResult()
    for entry in entries:
        count = len(entry.keywords)
        result.keyword_counts[entry.file_name] = count
        if count < min_keywords:
            result.fail(f"Insufficient keywords: {entry.file_name} has {count} keywords (need >={min_keywords})")
    return result


def validate_domain_prefix_naming(entries: list[IndexEntry], domain: str) -> PrefixNamingResult:
    result = PrefixNamingResult()
    expected_prefix = f"{domain}-"
    for entry in entries:
        if not entry.file_name.startswith(expected_prefix):
            result.non_conforming.append(entry.file_name)
            result.fail(f"Naming violation: {entry.file_name} should start with '{expected_prefix}' per ADR-017")
    return result


def validate_domain_index(
    domain: str, content: str, exists: Callable[[str], bool] | None, index_path: str = ""
) -> DomainIndexResult:
    """Run every per-domain rule. File references are only checked when exists is given."""
    entries = parse_index_entries(content)
    result = DomainIndexResult(index_path=index_path, entries=len(entries))
    if exists is not None:
        result.file_references = validate_file_references(entries, exists)
    result.keyword_density = validate_keyword_density(entries)
    result.index_format = validate_index_format(content)
    result.duplicate_entries = validate_duplicate_entries(entries)
    result.minimum_keywords = validate_minimum_keywords(entries)
    result.domain_prefix_naming = validate_domain_prefix_naming(entries, domain)
    return result


# =============================================================================
# Repository Rules
# =============================================================================


def validate_memory_index_references(
    root_content: str | None, index_names: list[str], exists: Callable[[str], bool]
) -> MemoryIndexReferenceResult:
    """Check memory-index.md completeness (every domain index named) and validity (every reference exists)."""
    result = MemoryIndexReferenceResult()
    if root_content is None:
        result.fail("CRITICAL: memory-index.md not found - required for tiered architecture")
        return result

    for name in index_names:
        if name not in root_content:
            result.unreferenced_indices.append(name)
            result.fail(f"P1 COMPLETENESS: Domain index not referenced in memory-index: {name}")

    for line in root_content.split("\n"):
        match = TABLE_ENTRY_PATTERN.match(line)
        if not match:
            continue
        cell = match.group(2).strip()
        if cell in ROOT_INDEX_HEADER_CELLS or cell.startswith("-"):
            continue
        for file_name in (part.strip() for part in cell.split(",")):
            if file_name and not exists(file_name):
                result.broken_references.append(file_name)
                result.fail(f"P1 VALIDITY: memory-index references non-existent file: {file_name}.md")
    return result


def find_orphaned_files(
    base_names: list[str], domains: list[str], referenced: set[str]
) -> list[OrphanedFile]:
    """Atomic files that no domain index references.

    Args:
        base_names: Every markdown file in the memory directory, without ".md"
        domains: Known domains
        referenced: File names referenced by any domain index
    """
    orphans: list[OrphanedFile] = []
    for base_name in sorted(base_names):
        if base_name.endswith("-index") or base_name == MEMORY_INDEX_NAME:
            continue
        if base_name.startswith("skill-"):
            if base_name not in referenced:
                orphans.append(OrphanedFile(base_name, "INVALID", "Rename to {domain}-{description} format per ADR-017"))
            continue
        if base_name.startswith("skills-"):
            orphans.append(
                OrphanedFile(
                    base_name,
                    "INVALID",
                    "Rename to {domain}-{description}-index format or move to atomic file per ADR-017",
                )
            )
            continue
        for domain in domains:
            if base_name.startswith(f"{domain}-") and base_name not in referenced:
                orphans.append(OrphanedFile(base_name, domain, f"skills-{domain}-index"))
    return orphans


def build_memory_index_remediation(result: MemoryIndexResult) -> str:
    parts: list[str] = []
    summary = result.summary
    if summary.failed_domains:
        parts.append(f"{summary.failed_domains} domain index(es) failed validation")
    if summary.missing_files:
        parts.append(f"{summary.missing_files} referenced file(s) not found")
    if summary.keyword_issues:
        parts.append(f"{summary.keyword_issues} keyword density issue(s)")
    if result.memory_index_result is not None and not result.memory_index_result.passed:
        parts.append("memory-index.md reference issues")
    if not parts:
        return ""
    return f"Fix the following: {', '.join(parts)}. See ADR-017 for tiered memory architecture requirements."


# =============================================================================
# Main Validation Functions
# =============================================================================


def _run(
    result: MemoryIndexResult,
    indices: list[tuple[DomainIndex, str]],
    root_content: str | None,
    exists: Callable[[str], bool] | None,
    base_names: list[str] | None,
) -> MemoryIndexResult:
    referenced: set[str] = set()
    result.summary.total_domains = len(indices)

    for index, content in indices:
        domain_result = validate_domain_index(index.domain, content, exists, index.path)
        result.domain_results[index.domain] = domain_result
        referenced.update(e.file_name for e in parse_index_entries(content))

        summary = result.summary
        summary.total_files += domain_result.entries
        summary.missing_files += len(domain_result.file_references.missing_files)
        summary.keyword_issues += len(domain_result.keyword_density.issues)
        if domain_result.passed:
            summary.passed_domains += 1
            result.add_check(f"domain_{index.domain}", True, f"Domain index {index.domain} validation passed")
        else:
            summary.failed_domains += 1
            result.add_check(f"domain_{index.domain}", False, f"Domain index {index.domain} validation failed")

        min_kw = domain_result.minimum_keywords
        result.add_warning(
            f"domain_{index.domain}_minimum_keywords",
            min_kw.passed,
            "; ".join(min_kw.issues) or f"All entries have >={MIN_KEYWORDS} keywords",
        )
        prefix = domain_result.domain_prefix_naming
        result.add_warning(
            f"domain_{index.domain}_prefix_naming",
            prefix.passed,
            "; ".join(prefix.issues) or f"All entries start with '{index.domain}-'",
        )

    if exists is not None:
        refs = validate_memory_index_references(root_content, [i.name for i, _ in indices], exists)
        result.memory_index_result = refs
        if refs.passed:
            result.add_check("memory_index_references", True, "Memory index reference validation passed")
        else:
            result.add_check("memory_index_references", False, "Memory index reference validation failed")

    if base_names is not None:
        result.orphans = find_orphaned_files(base_names, [i.domain for i, _ in indices], referenced)
        if result.orphans:
            result.add_warning("orphaned_files", False, f"{len(result.orphans)} orphaned files detected (warning)")
        else:
            result.add_warning("orphaned_files", True, "No orphaned files detected")

    if result.valid:
        result.message = "Memory index validation passed"
    else:
        result.message = "Memory index validation failed"
        result.remediation = build_memory_index_remediation(result)
    return result


def validate_memory_index(memory_path: str | Path) -> MemoryIndexResult:
    """Validate a memory directory on disk.

    Args:
        memory_path: Directory holding memory-index.md, domain indexes and atomic files

    Returns:
        MemoryIndexResult; a missing directory fails the memory_path_exists check
    """
    resolved = Path(memory_path).resolve()
    result = MemoryIndexResult(memory_path=str(resolved))
    if not dir_exists(resolved):
        result.add_check("memory_path_exists", False, f"Memory path not found: {resolved}")
        result.message = f"Memory path not found: {resolved}"
        return result

    indices: list[tuple[DomainIndex, str]] = []
    for index in get_domain_indices(resolved):
        content = read_text(index.path)
        if content is None:
            logger.warning("Skipping unreadable domain index %s", index.path)
            content = ""
        indices.append((index, content))

    root_content = read_text(resolved / f"{MEMORY_INDEX_NAME}.md")

    def exists(file_name: str) -> bool:
        return file_exists(resolved / f"{file_name}.md")

    base_names = [p.stem for p in list_markdown(resolved)]
    return _run(result, indices, root_content, exists, base_names)


def validate_memory_index_from_content(
    index_contents: Mapping[str, str],
    memory_index_content: str | None = None,
    existing_files: set[str] | None = None,
) -> MemoryIndexResult:
    """Validate domain indexes supplied as strings.

    Args:
        index_contents: Domain name -> domain index content
        memory_index_content: Content of memory-index.md (checked only with existing_files)
        existing_files: Base names (without ".md") of atomic files that exist. When
            given, file references, root-index references and orphans are checked.

    Returns:
        MemoryIndexResult with domains in sorted order
    """
    indices = [
        (DomainIndex(path="", name=f"skills-{domain}-index", domain=domain), index_contents[domain])
        for domain in sorted(index_contents)
    ]
    if existing_files is None:
        return _run(MemoryIndexResult(), indices, None, None, None)

    names = set(existing_files)
    return _run(MemoryIndexResult(), indices, memory_index_content, names.__contains__, sorted(names))


# =============================================================================
# Schema Validation
# =============================================================================


def get_index_entry_errors(entry: IndexEntry, registry: SchemaRegistry | None = None) -> list[ValidationError]:
    """Validate an IndexEntry against the memory-index-entry schema."""
    return get_schema("memory-index-entry", registry).errors(entry.to_dict())


def validate_index_entry(entry: IndexEntry, registry: SchemaRegistry | None = None) -> bool:
    return get_schema("memory-index-entry", registry).validate(entry.to_dict())
