"""Tests for reasoning-block stripping."""

import pytest

from response_refiner.llm.reasoning import (
    BUILTIN_TEMPLATES,
    ReasoningStripper,
    ReasoningTemplate,
    ReasoningTemplateRegistry,
    make_template_fallback,
    strip_reasoning,
)

THINK = ReasoningTemplate(name="DeepSeek", prefix="<think>", suffix="</think>")


class TestStripReasoning:
    """Tests for strip_reasoning."""

    def test_leading_block(self):
        """Test a block at the start of the reply is split off."""
        result = strip_reasoning("<think>because X</think>Final answer", THINK)
        assert result.reasoning == "because X"
        assert result.content == "Final answer"

    def test_leading_whitespace_allowed_when_strict(self):
        """Test whitespace before the block still counts as the start."""
        result = strip_reasoning("\n  <think>plan</think>\nAnswer", THINK)
        assert result.content == "Answer"

    def test_strict_requires_leading_block(self):
        """Test a block after other text is ignored in strict mode."""
        assert strip_reasoning("Intro <think>plan</think> Answer", THINK) is None

    def test_non_strict_matches_anywhere(self):
        """Test a block anywhere is removed when not strict."""
        result = strip_reasoning("Intro <think>plan</think> Answer", THINK, strict=False)
        assert result.reasoning == "plan"
        assert result.content == "Intro  Answer"

    def test_only_first_block_removed(self):
        """Test later blocks are left in place."""
        result = strip_reasoning("<think>a</think>B<think>c</think>", THINK)
        assert result.reasoning == "a"
        assert result.content == "B<think>c</think>"

    def test_multiline_reasoning(self):
        """Test reasoning may span lines."""
        result = strip_reasoning("<think>line 1\nline 2</think>Done", THINK)
        assert result.reasoning == "line 1\nline 2"

    def test_delimiters_are_literal(self):
        """Test regex metacharacters in delimiters are escaped."""
        template = ReasoningTemplate(name="Brackets", prefix="[[", suffix="]]")
        result = strip_reasoning("[[why?]] answer", template)
        assert result.reasoning == "why?"
        assert result.content == "answer"

    def test_no_match(self):
        """Test replies without a block return None."""
        assert strip_reasoning("Just an answer", THINK) is None

    def test_no_template(self):
        """Test None is returned without a template."""
        assert strip_reasoning("<think>x</think>y", None) is None


class TestReasoningTemplateRegistry:
    """Tests for ReasoningTemplateRegistry."""

    def test_builtins_registered(self):
        """Test the built-in templates are available."""
        registry = ReasoningTemplateRegistry()
        assert registry.names() == sorted(t.name for t in BUILTIN_TEMPLATES)
        assert registry.lookup("Claude").prefix == "<thinking>"

    def test_custom_template(self):
        """Test custom templates can be registered."""
        custom = ReasoningTemplate(name="Custom", prefix="<r>", suffix="</r>")
        registry = ReasoningTemplateRegistry([custom])
        assert registry.lookup("Custom") == custom

    def test_lookup_missing(self):
        """Test unknown or empty names return None."""
        registry = ReasoningTemplateRegistry()
        assert registry.lookup("Unknown") is None
        assert registry.lookup(None) is None


class TestReasoningStripper:
    """Tests for ReasoningStripper."""

    def test_backend_template_used(self):
        """Test a backend's registered template is applied."""
        stripper = ReasoningStripper(backend_templates={"deep": "DeepSeek"})
        result = stripper.strip("<think>x</think>Answer", "deep")
        assert result.content == "Answer"

    def test_unmapped_backend_without_fallback(self):
        """Test None is returned when nothing applies."""
        stripper = ReasoningStripper()
        assert stripper.strip("<think>x</think>Answer", "default") is None

    def test_fallback_used_for_unmapped_backend(self):
        """Test the fallback parser handles backends without a template."""
        stripper = ReasoningStripper(fallback=make_template_fallback(THINK))
        result = stripper.strip("Pre <think>x</think> Answer", "default", strict=False)
        assert result.reasoning == "x"

    def test_fallback_used_for_unknown_template_name(self):
        """Test a template name the registry lacks goes to the fallback."""
        stripper = ReasoningStripper(
            backend_templates={"deep": "Missing"},
            fallback=make_template_fallback(THINK),
        )
        assert stripper.strip("<think>x</think>Answer", "deep").content == "Answer"

    def test_fallback_errors_swallowed(self):
        """Test a failing fallback yields None instead of raising."""

        def broken(text, strict):
            raise RuntimeError("parser crashed")

        stripper = ReasoningStripper(fallback=broken)
        assert stripper.strip("<think>x</think>Answer", "default") is None

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("<think>x</think>Answer", "Answer"),
            ("No reasoning here", "No reasoning here"),
        ],
    )
    def test_content_of(self, raw, expected):
        """Test content_of falls back to the raw reply."""
        stripper = ReasoningStripper(backend_templates={"deep": "DeepSeek"})
        assert stripper.content_of(raw, "deep") == expected
