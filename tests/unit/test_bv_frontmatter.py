#!/usr/bin/env python3
"""Tests for bv_frontmatter.py - leading YAML block parsing."""

from bv_frontmatter import extract_block, parse_frontmatter, split_tool_list, strip_quotes


class TestExtractBlock:
    """Delimiter handling."""

    def test_absent_when_first_line_is_not_delimiter(self) -> None:
        """Frontmatter must open on line 1."""
        assert extract_block("\n---\nname: x\n---\n") == (None, "")

    def test_unterminated_block(self) -> None:
        """A missing closing delimiter is reported."""
        assert extract_block("---\nname: x\n") == (None, "Frontmatter not closed")

    def test_returns_inner_lines(self) -> None:
        """Lines between the delimiters are returned, CR stripped."""
        lines, error = extract_block("---\r\nname: x\r\n---\r\nbody")
        assert error == ""
        assert lines == ["name: x"]

    def test_delimiter_must_be_exact(self) -> None:
        """Trailing spaces or tabs disqualify a delimiter line."""
        assert extract_block("--- \nname: x\n---\n") == (None, "")
        assert extract_block("---\nname: x\n---\t\n") == (None, "Frontmatter not closed")


class TestSplitToolList:
    """allowed-tools tokenization."""

    def test_bracketed_list(self) -> None:
        """Brackets are removed and items trimmed."""
        assert split_tool_list("[Read, Grep, 'Write']") == ["Read", "Grep", "Write"]

    def test_bare_comma_list(self) -> None:
        """A scalar comma-separated value is accepted."""
        assert split_tool_list("Read, Bash(git:*)") == ["Read", "Bash(git:*)"]

    def test_commas_inside_parentheses_stay(self) -> None:
        """Commas nested in a tool scope do not split the token."""
        assert split_tool_list("[Bash(git add:*, git commit:*), Read]") == ["Bash(git add:*, git commit:*)", "Read"]

    def test_wildcard(self) -> None:
        """A bare wildcard survives tokenization."""
        assert split_tool_list("[*]") == ["*"]

    def test_strip_quotes_only_matching_pairs(self) -> None:
        """Mismatched quotes are left alone."""
        assert strip_quotes('"x"') == "x"
        assert strip_quotes("'x\"") == "'x\""


class TestParseFrontmatter:
    """Field extraction and syntax errors."""

    def test_known_fields(self) -> None:
        """name, description, argument-hint and allowed-tools are extracted."""
        content = (
            "---\n"
            "name: pr-review\n"
            'description: "Review a pull request"\n'
            "argument-hint: <pr-number>\n"
            "allowed-tools: [Read, Bash(gh:*)]\n"
            "---\n"
            "Body\n"
        )
        fm, error = parse_frontmatter(content)
        assert error == ""
        assert fm.present
        assert fm.name == "pr-review"
        assert fm.description == "Review a pull request"
        assert fm.argument_hint == "<pr-number>"
        assert fm.allowed_tools == ["Read", "Bash(gh:*)"]

    def test_block_list_allowed_tools(self) -> None:
        """allowed-tools may be written as a YAML block list."""
        content = "---\ndescription: x\nallowed-tools:\n  - Read\n  - 'Grep'\n---\n"
        fm, error = parse_frontmatter(content)
        assert error == ""
        assert fm.allowed_tools == ["Read", "Grep"]

    def test_comments_and_blank_lines_ignored(self) -> None:
        """Comment lines are not fields and not errors."""
        fm, error = parse_frontmatter("---\n# comment\n\nname: a\n---\n")
        assert error == ""
        assert fm.name == "a"

    def test_missing_colon_reports_first_bad_line(self) -> None:
        """The first line without a colon produces the syntax error."""
        fm, error = parse_frontmatter("---\nname: a\njust words here\nalso bad\n---\n")
        assert error == "Invalid YAML syntax: missing colon in line 'just words here'"
        assert fm.present
        assert fm.name == "a"

    def test_long_bad_line_is_truncated(self) -> None:
        """Bad lines longer than 40 characters are shortened in the message."""
        bad = "x" * 60
        _, error = parse_frontmatter(f"---\n{bad}\n---\n")
        assert error == f"Invalid YAML syntax: missing colon in line '{'x' * 40}...'"

    def test_empty_block_is_absent(self) -> None:
        """An empty block counts as no frontmatter."""
        fm, error = parse_frontmatter("---\n---\nbody")
        assert not fm.present
        assert error == ""

    def test_unknown_keys_kept(self) -> None:
        """Keys outside the known set are still reachable."""
        fm, _ = parse_frontmatter("---\nmodel: opus\ntags:\n  - a\n---\n")
        assert fm.has("model")
        assert fm.lists["tags"] == ["a"]
        assert not fm.has("name")

    def test_to_dict_camel_case(self) -> None:
        """to_dict uses camelCase keys."""
        fm, _ = parse_frontmatter("---\nargument-hint: <x>\n---\n")
        assert fm.to_dict() == {"name": "", "description": "", "argumentHint": "<x>", "allowedTools": []}
