#!/usr/bin/env python3
"""
Brain Validation - PR Maintenance Analyzer

Classifies open pull requests for an automated maintenance workflow.

Bot taxonomy:
    agent-controlled    bot the workflow drives directly; its PRs (or PRs it
                        is asked to review) become action items
    mention-triggered   bot that acts when mentioned; action items carry
                        requiresSynthesis
    review-bot          review-only bots; problems produce blocked items
    human               anything else; problems produce blocked items

A PR targeting a non-protected branch is a derivative of the PR whose head
branch it targets. Each such parent gets a PENDING_DERIVATIVES action item.

Action items are sorted: conflicts first, then failing checks, then PR number.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any, Iterable, TypeVar

from bv_schema import SchemaRegistry, get_schema
from bv_validation_common import ConfigError, ValidationError, load_config_file

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=StrEnum)

# =============================================================================
# Enumerations
# =============================================================================


class BotCategory(StrEnum):
    AGENT_CONTROLLED = "agent-controlled"
    MENTION_TRIGGERED = "mention-triggered"
    REVIEW_BOT = "review-bot"
    HUMAN = "human"


class ItemCategory(StrEnum):
    """Category written on an action or blocked item."""

    AGENT_CONTROLLED = "agent-controlled"
    MENTION_TRIGGERED = "mention-triggered"
    HUMAN_BLOCKED = "human-blocked"
    HAS_DERIVATIVES = "has-derivatives"


class PRActionReason(StrEnum):
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    HAS_CONFLICTS = "HAS_CONFLICTS"
    HAS_FAILING_CHECKS = "HAS_FAILING_CHECKS"
    PENDING_DERIVATIVES = "PENDING_DERIVATIVES"
    MENTION = "MENTION"


class MergeableState(StrEnum):
    MERGEABLE = "MERGEABLE"
    CONFLICTING = "CONFLICTING"
    UNKNOWN = "UNKNOWN"


class ReviewDecision(StrEnum):
    APPROVED = "APPROVED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    REVIEW_REQUIRED = "REVIEW_REQUIRED"


class CheckState(StrEnum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    ERROR = "ERROR"
    PENDING = "PENDING"
    EXPECTED = "EXPECTED"


class CheckConclusion(StrEnum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    NEUTRAL = "NEUTRAL"
    SKIPPED = "SKIPPED"
    CANCELLED = "CANCELLED"
    TIMED_OUT = "TIMED_OUT"
    ACTION_REQUIRED = "ACTION_REQUIRED"
    STALE = "STALE"
    STARTUP_FAILURE = "STARTUP_FAILURE"


FAILING_ROLLUP_STATES = frozenset({CheckState.FAILURE, CheckState.ERROR})


def coerce_enum(enum_cls: type[E], value: Any) -> E | None:
    """Map a wire string to an enum member; None for null or unrecognized values."""
    if value is None or value == "":
        return None
    try:
        return enum_cls(value)
    except ValueError:
        logger.debug("Unrecognized %s value %r", enum_cls.__name__, value)
        return None


# =============================================================================
# Configuration
# =============================================================================

DEFAULT_PROTECTED_BRANCHES = ("main", "master", "develop")

DEFAULT_BOT_CATEGORIES: dict[str, tuple[str, ...]] = {
    BotCategory.AGENT_CONTROLLED: ("rjmurillo-bot", "rjmurillo[bot]"),
    BotCategory.MENTION_TRIGGERED: ("copilot-swe-agent", "copilot-swe-agent[bot]", "copilot", "app/copilot-swe-agent"),
    BotCategory.REVIEW_BOT: (
        "coderabbitai",
        "coderabbitai[bot]",
        "cursor[bot]",
        "gemini-code-assist",
        "gemini-code-assist[bot]",
    ),
}

DEFAULT_MAX_PRS = 20
DEFAULT_CORE_THRESHOLD = 100
DEFAULT_GRAPHQL_THRESHOLD = 50


@dataclass
class PRMaintenanceConfig:
    """Protected branches, bot taxonomy, PR cap and rate-limit thresholds."""

    protected_branches: list[str] = field(default_factory=lambda: list(DEFAULT_PROTECTED_BRANCHES))
    bot_categories: dict[BotCategory, list[str]] = field(
        default_factory=lambda: {category: list(names) for category, names in DEFAULT_BOT_CATEGORIES.items()}
    )
    max_prs: int = DEFAULT_MAX_PRS
    core_threshold: int = DEFAULT_CORE_THRESHOLD
    graphql_threshold: int = DEFAULT_GRAPHQL_THRESHOLD

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PRMaintenanceConfig:
        """Build a config from a mapping; absent keys keep their defaults.

        Accepts camelCase (``protectedBranches``, ``botCategories``,
        ``maxPRs``) or snake_case keys. Rate-limit thresholds live under
        ``rateLimit: {core, graphql}``.

        Raises:
            ConfigError: If a value has the wrong shape or names an unknown category
        """
        config = cls()

        branches = data.get("protectedBranches", data.get("protected_branches"))
        if branches is not None:
            if not isinstance(branches, list) or not all(isinstance(b, str) for b in branches):
                raise ConfigError("protectedBranches must be a list of strings")
            config.protected_branches = list(branches)

        categories = data.get("botCategories", data.get("bot_categories"))
        if categories is not None:
            if not isinstance(categories, dict):
                raise ConfigError("botCategories must be a mapping of category to login list")
            parsed: dict[BotCategory, list[str]] = {}
            for key, names in categories.items():
                category = coerce_enum(BotCategory, key)
                if category is None or category is BotCategory.HUMAN:
                    raise ConfigError(f"Unknown bot category: {key}")
                if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
                    raise ConfigError(f"botCategories.{key} must be a list of strings")
                parsed[category] = list(names)
            config.bot_categories = parsed

        max_prs = data.get("maxPRs", data.get("max_prs"))
        if max_prs is not None:
            if not isinstance(max_prs, int) or isinstance(max_prs, bool) or max_prs < 1:
                raise ConfigError("maxPRs must be a positive integer")
            config.max_prs = max_prs

        rate_limit = data.get("rateLimit", data.get("rate_limit")) or {}
        if not isinstance(rate_limit, dict):
            raise ConfigError("rateLimit must be a mapping")
        for key, attr in (("core", "core_threshold"), ("graphql", "graphql_threshold")):
            if key in rate_limit:
                value = rate_limit[key]
                if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                    raise ConfigError(f"rateLimit.{key} must be a non-negative integer")
                setattr(config, attr, value)
        return config

    @classmethod
    def from_file(cls, path: str | Path) -> PRMaintenanceConfig:
        return cls.from_dict(load_config_file(path))


# =============================================================================
# Pull Request Model
# =============================================================================


@dataclass
class StatusContext:
    name: str = ""
    conclusion: CheckConclusion | None = None
    state: CheckState | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StatusContext:
        # CheckRun nodes carry name/conclusion, StatusContext nodes carry context/state
        return cls(
            name=data.get("name") or data.get("context") or "",
            conclusion=coerce_enum(CheckConclusion, data.get("conclusion")),
            state=coerce_enum(CheckState, data.get("state")),
        )


@dataclass
class StatusCheckRollup:
    state: CheckState | None = None
    contexts: list[StatusContext] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StatusCheckRollup:
        nodes = ((data.get("contexts") or {}).get("nodes")) or []
        return cls(
            state=coerce_enum(CheckState, data.get("state")),
            contexts=[StatusContext.from_dict(n) for n in nodes if isinstance(n, dict)],
        )


@dataclass
class PullRequest:
    """Open pull request in the shape returned by the GitHub GraphQL API."""

    number: int
    title: str = ""
    author: str = ""
    head_ref_name: str = ""
    base_ref_name: str = ""
    mergeable: MergeableState | None = None
    review_decision: ReviewDecision | None = None
    review_requests: list[str] = field(default_factory=list)
    # Status rollup of each commit node, newest first; None when a commit has none
    commits: list[StatusCheckRollup | None] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PullRequest:
        reviewers: list[str] = []
        for node in (data.get("reviewRequests") or {}).get("nodes") or []:
            login = ((node or {}).get("requestedReviewer") or {}).get("login")
            if login:
                reviewers.append(login)

        commits: list[StatusCheckRollup | None] = []
        for node in (data.get("commits") or {}).get("nodes") or []:
            rollup = ((node or {}).get("commit") or {}).get("statusCheckRollup")
            commits.append(StatusCheckRollup.from_dict(rollup) if isinstance(rollup, dict) else None)

        return cls(
            number=int(data["number"]),
            title=data.get("title") or "",
            author=(data.get("author") or {}).get("login") or "",
            head_ref_name=data.get("headRefName") or "",
            base_ref_name=data.get("baseRefName") or "",
            mergeable=coerce_enum(MergeableState, data.get("mergeable")),
            review_decision=coerce_enum(ReviewDecision, data.get("reviewDecision")),
            review_requests=reviewers,
            commits=commits,
        )

    @property
    def has_conflicts(self) -> bool:
        return self.mergeable is MergeableState.CONFLICTING

    @property
    def has_failing_checks(self) -> bool:
        """True when the first commit's rollup failed or any of its contexts failed."""
        if not self.commits or self.commits[0] is None:
            return False
        rollup = self.commits[0]
        if rollup.state in FAILING_ROLLUP_STATES:
            return True
        return any(
            ctx.conclusion is CheckConclusion.FAILURE or ctx.state is CheckState.FAILURE for ctx in rollup.contexts
        )

    @property
    def has_changes_requested(self) -> bool:
        return self.review_decision is ReviewDecision.CHANGES_REQUESTED


def parse_pull_requests(payload: str | bytes | dict[str, Any]) -> list[PullRequest]:
    """Read ``data.repository.pullRequests.nodes`` from a GraphQL response.

    Raises:
        ValueError: If the payload is not valid JSON or a node lacks a number
    """
    document = json.loads(payload) if isinstance(payload, (str, bytes)) else payload
    nodes = (((document.get("data") or {}).get("repository") or {}).get("pullRequests") or {}).get("nodes") or []
    prs: list[PullRequest] = []
    for node in nodes:
        try:
            prs.append(PullRequest.from_dict(node))
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed pull request node: {e}") from e
    return prs


# =============================================================================
# Rate Limit
# =============================================================================


@dataclass
class RateLimit:
    core_remaining: int = 0
    graphql_remaining: int = 0
    core_threshold: int = DEFAULT_CORE_THRESHOLD
    graphql_threshold: int = DEFAULT_GRAPHQL_THRESHOLD

    @property
    def is_safe(self) -> bool:
        return self.core_remaining >= self.core_threshold and self.graphql_remaining >= self.graphql_threshold

    @classmethod
    def from_dict(cls, data: dict[str, Any], config: PRMaintenanceConfig | None = None) -> RateLimit:
        """Read ``resources.core.remaining`` and ``resources.graphql.remaining``."""
        cfg = config or PRMaintenanceConfig()
        resources = data.get("resources") or {}
        return cls(
            core_remaining=int((resources.get("core") or {}).get("remaining", 0)),
            graphql_remaining=int((resources.get("graphql") or {}).get("remaining", 0)),
            core_threshold=cfg.core_threshold,
            graphql_threshold=cfg.graphql_threshold,
        )

    def to_dict(self) -> dict[str, Any]:
        return {"coreRemaining": self.core_remaining, "graphqlRemaining": self.graphql_remaining, "isSafe": self.is_safe}


def check_rate_limit(core_remaining: int, graphql_remaining: int, config: PRMaintenanceConfig | None = None) -> RateLimit:
    cfg = config or PRMaintenanceConfig()
    return RateLimit(core_remaining, graphql_remaining, cfg.core_threshold, cfg.graphql_threshold)


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class BotAuthorInfo:
    login: str
    category: BotCategory = BotCategory.HUMAN

    @property
    def is_bot(self) -> bool:
        return self.category is not BotCategory.HUMAN


@dataclass
class PRActionItem:
    number: int
    category: ItemCategory
    reason: PRActionReason
    author: str
    title: str = ""
    has_conflicts: bool = False
    has_failing_checks: bool = False
    head_ref_name: str = ""
    base_ref_name: str = ""
    requires_synthesis: bool = False
    derivatives: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "number": self.number,
            "category": str(self.category),
            "hasConflicts": self.has_conflicts,
            "hasFailingChecks": self.has_failing_checks,
            "reason": str(self.reason),
            "author": self.author,
            "title": self.title,
        }
        if self.head_ref_name:
            result["headRefName"] = self.head_ref_name
        if self.base_ref_name:
            result["baseRefName"] = self.base_ref_name
        if self.requires_synthesis:
            result["requiresSynthesis"] = True
        if self.derivatives:
            result["derivatives"] = list(self.derivatives)
        return result


@dataclass
class DerivativePR:
    number: int
    title: str
    author: str
    target_branch: str
    source_branch: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "title": self.title,
            "author": self.author,
            "targetBranch": self.target_branch,
            "sourceBranch": self.source_branch,
        }


@dataclass
class ParentWithDerivatives:
    parent_pr: int
    parent_title: str
    parent_branch: str
    derivatives: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "parentPR": self.parent_pr,
            "parentTitle": self.parent_title,
            "parentBranch": self.parent_branch,
            "derivatives": list(self.derivatives),
        }


@dataclass
class PRMaintenanceResult:
    """Full analysis before formatting for the workflow."""

    total_prs: int = 0
    action_required: list[PRActionItem] = field(default_factory=list)
    blocked: list[PRActionItem] = field(default_factory=list)
    derivative_prs: list[DerivativePR] = field(default_factory=list)
    parents_with_derivatives: list[ParentWithDerivatives] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalPRs": self.total_prs,
            "actionRequired": [i.to_dict() for i in self.action_required],
            "blocked": [i.to_dict() for i in self.blocked],
            "derivativePRs": [d.to_dict() for d in self.derivative_prs],
            "parentsWithDerivatives": [p.to_dict() for p in self.parents_with_derivatives],
        }


@dataclass
class PRMaintenanceSummary:
    total: int = 0
    action_required: int = 0
    blocked: int = 0
    derivatives: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "actionRequired": self.action_required,
            "blocked": self.blocked,
            "derivatives": self.derivatives,
        }


@dataclass
class PRMaintenanceOutput:
    prs: list[PRActionItem] = field(default_factory=list)
    summary: PRMaintenanceSummary = field(default_factory=PRMaintenanceSummary)

    def to_dict(self) -> dict[str, Any]:
        return {"prs": [item.to_dict() for item in self.prs], "summary": self.summary.to_dict()}

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


# =============================================================================
# Classification
# =============================================================================


def _matches_login(login: str, name: str) -> bool:
    lowered = login.lower()
    candidate = name.lower()
    return lowered == candidate or lowered.startswith(candidate)


def get_bot_author_info(login: str, config: PRMaintenanceConfig | None = None) -> BotAuthorInfo:
    """Categorize a login by case-insensitive equality or prefix match.

    Categories are tried in configuration order; the first match wins.
    """
    cfg = config or PRMaintenanceConfig()
    if login:
        for category, names in cfg.bot_categories.items():
            if any(_matches_login(login, name) for name in names):
                return BotAuthorInfo(login=login, category=BotCategory(category))
    return BotAuthorInfo(login=login)


def has_agent_controlled_reviewer(reviewers: Iterable[str], config: PRMaintenanceConfig | None = None) -> bool:
    return any(get_bot_author_info(r, config).category is BotCategory.AGENT_CONTROLLED for r in reviewers if r)


def _reason(pr: PullRequest) -> PRActionReason | None:
    """First signal in priority order: changes requested, conflicts, failing checks."""
    if pr.has_changes_requested:
        return PRActionReason.CHANGES_REQUESTED
    if pr.has_conflicts:
        return PRActionReason.HAS_CONFLICTS
    if pr.has_failing_checks:
        return PRActionReason.HAS_FAILING_CHECKS
    return None


def classify_pr(
    pr: PullRequest, config: PRMaintenanceConfig | None = None
) -> tuple[PRActionItem | None, PRActionItem | None]:
    """Classify one PR.

    Returns:
        Tuple of (action_item, blocked_item); at most one is not None
    """
    reason = _reason(pr)
    if reason is None:
        return None, None

    info = get_bot_author_info(pr.author, config)
    if info.category is BotCategory.AGENT_CONTROLLED or has_agent_controlled_reviewer(pr.review_requests, config):
        category = ItemCategory.AGENT_CONTROLLED
    elif info.category is BotCategory.MENTION_TRIGGERED:
        category = ItemCategory.MENTION_TRIGGERED
    else:
        return None, PRActionItem(
            number=pr.number,
            category=ItemCategory.HUMAN_BLOCKED,
            reason=reason,
            author=pr.author,
            title=pr.title,
            has_conflicts=pr.has_conflicts,
            has_failing_checks=pr.has_failing_checks,
        )

    return (
        PRActionItem(
            number=pr.number,
            category=category,
            reason=reason,
            author=pr.author,
            title=pr.title,
            has_conflicts=pr.has_conflicts,
            has_failing_checks=pr.has_failing_checks,
            head_ref_name=pr.head_ref_name,
            base_ref_name=pr.base_ref_name,
            requires_synthesis=category is ItemCategory.MENTION_TRIGGERED,
        ),
        None,
    )


def get_derivative_prs(prs: Iterable[PullRequest], config: PRMaintenanceConfig | None = None) -> list[DerivativePR]:
    """PRs whose base branch is not protected, in input order."""
    cfg = config or PRMaintenanceConfig()
    protected = set(cfg.protected_branches)
    return [
        DerivativePR(
            number=pr.number,
            title=pr.title,
            author=pr.author,
            target_branch=pr.base_ref_name,
            source_branch=pr.head_ref_name,
        )
        for pr in prs
        if pr.base_ref_name not in protected
    ]


def get_parents_with_derivatives(
    prs: Iterable[PullRequest], derivatives: Iterable[DerivativePR]
) -> list[ParentWithDerivatives]:
    """Group derivatives under the PR whose head branch they target, sorted by parent number."""
    by_head: dict[str, PullRequest] = {}
    for pr in prs:
        by_head.setdefault(pr.head_ref_name, pr)

    parents: dict[int, ParentWithDerivatives] = {}
    for derivative in derivatives:
        parent = by_head.get(derivative.target_branch)
        if parent is None:
            continue
        entry = parents.get(parent.number)
        if entry is None:
            entry = ParentWithDerivatives(
                parent_pr=parent.number, parent_title=parent.title, parent_branch=parent.head_ref_name
            )
            parents[parent.number] = entry
        entry.derivatives.append(derivative.number)
    return [parents[number] for number in sorted(parents)]


def analyze_prs(prs: list[PullRequest], config: PRMaintenanceConfig | None = None) -> PRMaintenanceResult:
    """Analyze up to ``max_prs`` PRs.

    PENDING_DERIVATIVES items come first, followed by per-PR items in input
    order. Use format_maintenance_output for the sorted workflow form.
    """
    cfg = config or PRMaintenanceConfig()
    if len(prs) > cfg.max_prs:
        logger.info("Analyzing first %d of %d pull requests", cfg.max_prs, len(prs))
        prs = prs[: cfg.max_prs]

    result = PRMaintenanceResult(total_prs=len(prs))
    result.derivative_prs = get_derivative_prs(prs, cfg)
    if result.derivative_prs:
        result.parents_with_derivatives = get_parents_with_derivatives(prs, result.derivative_prs)
        for parent in result.parents_with_derivatives:
            result.action_required.append(
                PRActionItem(
                    number=parent.parent_pr,
                    category=ItemCategory.HAS_DERIVATIVES,
                    reason=PRActionReason.PENDING_DERIVATIVES,
                    author="N/A",
                    title=parent.parent_title,
                    derivatives=list(parent.derivatives),
                )
            )

    for pr in prs:
        action, blocked = classify_pr(pr, cfg)
        if action is not None:
            result.action_required.append(action)
        if blocked is not None:
            result.blocked.append(blocked)
    return result


def sort_action_required(items: Iterable[PRActionItem]) -> list[PRActionItem]:
    """Conflicts first, then failing checks, then ascending PR number. Stable for equal keys."""
    return sorted(items, key=lambda item: (not item.has_conflicts, not item.has_failing_checks, item.number))


def format_maintenance_output(result: PRMaintenanceResult) -> PRMaintenanceOutput:
    return PRMaintenanceOutput(
        prs=sort_action_required(result.action_required),
        summary=PRMaintenanceSummary(
            total=result.total_prs,
            action_required=len(result.action_required),
            blocked=len(result.blocked),
            derivatives=len(result.derivative_prs),
        ),
    )


def run_pr_maintenance(
    payload: str | bytes | dict[str, Any], config: PRMaintenanceConfig | None = None
) -> PRMaintenanceOutput:
    """Parse a GraphQL pull request listing and return the formatted output."""
    return format_maintenance_output(analyze_prs(parse_pull_requests(payload), config))


# =============================================================================
# Schema Validation
# =============================================================================


def get_output_errors(output: PRMaintenanceOutput | dict[str, Any], registry: SchemaRegistry | None = None) -> list[ValidationError]:
    """Validate the JSON form of an output against the pr-maintenance-output schema."""
    schema = get_schema("pr-maintenance-output", registry)
    if isinstance(output, PRMaintenanceOutput):
        return schema.errors_from_json(output.to_json())
    return schema.errors(output)


def validate_output(output: PRMaintenanceOutput | dict[str, Any], registry: SchemaRegistry | None = None) -> bool:
    return not get_output_errors(output, registry)
