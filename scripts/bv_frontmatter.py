#!/usr/bin/env python3
"""
Brain Validation - Frontmatter Parser

Extracts the leading YAML block of a markdown file and parses it with a
line-oriented subset of YAML. A full YAML loader is deliberately not used:
values such as ``allowed-tools: [*]`` are common in command files and are
not valid YAML (``*`` starts an alias).

Supported forms inside the block:
    key: value
    key: "quoted value"
    allowed-tools: [Read, "Bash(git:*)"]
    allowed-tools: Read, Grep
    allowed-tools:
      - Read
      - Grep
"""

from __future__ import annotations

from dataclasses import dataclass, field

from bv_validation_common import truncate

FRONTMATTER_DELIMITER = "---"

# Lines longer than this are shortened in syntax error messages
ERROR_LINE_PREVIEW = 40


@dataclass
class Frontmatter:
    """Parsed frontmatter fields.

    ``fields`` keeps every scalar key seen (known or not) and ``lists`` every
    block list, so callers that need unknown keys can still reach them.
    """

    raw_yaml: str = ""
    name: str = ""
    description: str = ""
    argument_hint: str = ""
    allowed_tools: list[str] = field(default_factory=list)
    fields: dict[str, str] = field(default_factory=dict)
    lists: dict[str, list[str]] = field(default_factory=dict)

    @property
    def present(self) -> bool:
        return bool(self.raw_yaml)

    def has(self, key: str) -> bool:
        """True when the key appeared in the block with a non-empty value."""
        return bool(self.fields.get(key)) or bool(self.lists.get(key))

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "description": self.description,
            "argumentHint": self.argument_hint,
            "allowedTools": list(self.allowed_tools),
        }


# =============================================================================
# Parsing Functions
# =============================================================================


def strip_quotes(value: str) -> str:
    """Remove one pair of matching single or double quotes."""
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def split_tool_list(value: str) -> list[str]:
    """Split an allowed-tools value into tokens.

    Accepts ``[a, b]`` and bare ``a, b``. Commas inside parentheses belong to
    the token (``Bash(git add:*, git commit:*)`` stays whole).
    """
    text = value.strip()
    if text.startswith("[") and text.endswith("]"):
        text = text[1:-1]

    tokens: list[str] = []
    depth = 0
    current: list[str] = []
    for ch in text:
        if ch == "(":
            depth += 1
        elif ch == ")" and depth > 0:
            depth -= 1
        if ch == "," and depth == 0:
            tokens.append("".join(current))
            current = []
            continue
        current.append(ch)
    tokens.append("".join(current))

    return [strip_quotes(t.strip()) for t in tokens if strip_quotes(t.strip())]


def extract_block(content: str) -> tuple[list[str] | None, str]:
    """Return the lines between the opening and closing delimiters.

    Returns:
        (lines, error). lines is None when there is no frontmatter or it is
        not closed; error is "" unless the block is unterminated.
    """
    lines = content.split("\n")
    if not lines or lines[0].rstrip("\r") != FRONTMATTER_DELIMITER:
        return None, ""

    for index in range(1, len(lines)):
        if lines[index].rstrip("\r") == FRONTMATTER_DELIMITER:
            return [line.rstrip("\r") for line in lines[1:index]], ""

    return None, "Frontmatter not closed"


def parse_frontmatter(content: str) -> tuple[Frontmatter, str]:
    """Parse the leading frontmatter block of markdown content.

    Args:
        content: Full markdown text

    Returns:
        Tuple of (frontmatter, yaml_error). The frontmatter has an empty
        raw_yaml when the block is absent or unterminated; yaml_error is ""
        when the block parsed cleanly.
    """
    block, error = extract_block(content)
    if block is None:
        return Frontmatter(), error

    raw_yaml = "\n".join(block)
    if not raw_yaml.strip():
        return Frontmatter(), ""

    fm = Frontmatter(raw_yaml=raw_yaml)
    list_key: str | None = None

    for line in block:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        if list_key is not None and (stripped == "-" or stripped.startswith("- ")):
            item = strip_quotes(stripped[1:].strip())
            if item:
                fm.lists[list_key].append(item)
            continue

        key, sep, value = stripped.partition(":")
        if not sep or not key.strip():
            if not error:
                error = f"Invalid YAML syntax: missing colon in line '{truncate(stripped, ERROR_LINE_PREVIEW)}'"
            list_key = None
            continue

        key = key.strip()
        value = value.strip()
        if not value:
            # Possibly the head of a block list
            list_key = key
            fm.lists.setdefault(key, [])
            fm.fields[key] = ""
            continue

        list_key = None
        fm.fields[key] = strip_quotes(value)
        if key == "allowed-tools":
            fm.lists[key] = split_tool_list(value)

    fm.name = fm.fields.get("name", "")
    fm.description = fm.fields.get("description", "")
    fm.argument_hint = fm.fields.get("argument-hint", "")
    fm.allowed_tools = list(fm.lists.get("allowed-tools", []))
    return fm, error
