"""Unit tests for invalidation pattern compilation."""

import pytest

from ipdashboard.cache.patterns import (
    AllPattern,
    ExactPattern,
    PrefixPattern,
    WildcardPattern,
    compile_pattern,
)
from ipdashboard.core.exceptions import PatternSyntaxError


class TestCompilePattern:
    """Test pattern classification."""

    def test_star_is_all(self):
        assert compile_pattern("*") == AllPattern()

    def test_star_runs_collapse(self):
        assert compile_pattern("***") == AllPattern()
        assert compile_pattern("aebf:**") == PrefixPattern("aebf:")

    def test_exact(self):
        assert compile_pattern("aebf:GET:/api/aebf/budget-years:") == ExactPattern(
            "aebf:GET:/api/aebf/budget-years:"
        )

    def test_prefix(self):
        assert compile_pattern("aebf:*") == PrefixPattern("aebf:")

    def test_interior_wildcard(self):
        pattern = compile_pattern("aebf:*division=FP*")
        assert isinstance(pattern, WildcardPattern)
        assert pattern.glob == "aebf:*division=FP*"

    @pytest.mark.parametrize(
        "bad",
        ["", "aebf:?", "aebf:[ab]", "a]b", "a\\b", "has space", "tab\there", "nl\n"],
    )
    def test_rejects_unsupported_syntax(self, bad):
        with pytest.raises(PatternSyntaxError):
            compile_pattern(bad)

    def test_rejects_non_string(self):
        with pytest.raises(PatternSyntaxError):
            compile_pattern(None)  # type: ignore[arg-type]

    def test_error_is_value_error(self):
        """Callers can catch PatternSyntaxError as ValueError."""
        with pytest.raises(ValueError):
            compile_pattern("a?b")


class TestMatching:
    """Test pattern matching semantics."""

    def test_all_matches_everything(self):
        assert compile_pattern("*").matches("anything:at:all")

    def test_exact_matches_only_itself(self):
        pattern = compile_pattern("aebf:GET:/a:")
        assert pattern.matches("aebf:GET:/a:")
        assert not pattern.matches("aebf:GET:/a:x")

    def test_prefix(self):
        pattern = compile_pattern("aebf:*")
        assert pattern.matches("aebf:GET:/api/aebf/budget:division=FP")
        assert not pattern.matches("health:GET:/api/health:")

    def test_star_crosses_colons(self):
        """'*' matches any run of characters including ':'."""
        pattern = compile_pattern("aebf:*division=FP*")
        assert pattern.matches("aebf:GET:/api/aebf/budget:budgetYear=2025&division=FP")
        assert not pattern.matches("aebf:GET:/api/aebf/budget:division=HC")

    def test_regex_metacharacters_are_literal(self):
        pattern = compile_pattern("a.b*c+d")
        assert pattern.matches("a.bXYZc+d")
        assert not pattern.matches("aXbXYZc+d")

    def test_leading_wildcard(self):
        pattern = compile_pattern("*:FP")
        assert pattern.matches("x:y:FP")
        assert not pattern.matches("x:y:FPX")
