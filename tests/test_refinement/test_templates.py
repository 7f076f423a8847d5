"""Tests for step prompt rendering."""

from response_refiner.host.macros import MacroExpander
from response_refiner.models.config import Step
from response_refiner.refinement.templates import (
    RenderedPrompt,
    render_step_prompts,
    substitute_placeholders,
)


class TestSubstitutePlaceholders:
    """Tests for substitute_placeholders."""

    def test_replaces_all_occurrences(self):
        """Test every placeholder instance is substituted."""
        text = "{{draft}} / {{draft}} / {{savedMessages}}"
        assert substitute_placeholders(text, "D", "S") == "D / D / S"

    def test_leaves_other_macros(self):
        """Test unrelated macros are untouched."""
        assert substitute_placeholders("{{user}}: {{draft}}", "D", "") == "{{user}}: D"

    def test_empty_saved_messages(self):
        """Test an empty excerpt removes the placeholder."""
        assert substitute_placeholders("Context: {{savedMessages}}", "D", "") == "Context: "


class TestRenderStepPrompts:
    """Tests for render_step_prompts."""

    def test_renders_both_prompts(self):
        """Test the system prompt and user message are both substituted."""
        step = Step(system_prompt="Editor for {{draft}}", user_message="Fix: {{draft}}")
        prompt = render_step_prompts(step, "text", "")
        assert prompt.system_prompt == "Editor for text"
        assert prompt.user_message == "Fix: text"

    def test_macro_pass_runs_after_placeholders(self):
        """Test host macros are expanded after the fixed placeholders."""
        step = Step(system_prompt="You help {{user}}.", user_message="{{draft}}")
        expand = MacroExpander({"user": "Alice"})
        prompt = render_step_prompts(step, "Hello {{user}}", "", expand)
        # Macros inside the substituted draft are expanded too
        assert prompt.system_prompt == "You help Alice."
        assert prompt.user_message == "Hello Alice"

    def test_saved_messages_inserted(self):
        """Test the saved-messages excerpt is inserted."""
        step = Step(system_prompt="", user_message="{{savedMessages}}\n---\n{{draft}}")
        prompt = render_step_prompts(step, "D", "User: hi")
        assert prompt.user_message == "User: hi\n---\nD"


class TestRenderedPrompt:
    """Tests for RenderedPrompt."""

    def test_single_prompt(self):
        """Test flattening for the active session."""
        prompt = RenderedPrompt(system_prompt="SYS", user_message="USER")
        assert prompt.as_single_prompt() == "SYS\n\nUSER"

    def test_single_prompt_without_system(self):
        """Test flattening when there is no system prompt."""
        prompt = RenderedPrompt(system_prompt="", user_message="USER")
        assert prompt.as_single_prompt() == "USER"

    def test_messages(self):
        """Test the role-tagged message list."""
        prompt = RenderedPrompt(system_prompt="SYS", user_message="USER")
        assert prompt.as_messages() == [
            {"role": "system", "content": "SYS"},
            {"role": "user", "content": "USER"},
        ]

    def test_messages_without_system(self):
        """Test the system entry is omitted when empty."""
        prompt = RenderedPrompt(system_prompt="", user_message="USER")
        assert prompt.as_messages() == [{"role": "user", "content": "USER"}]
