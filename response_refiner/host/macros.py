"""Host macro pass applied to step prompts after placeholder substitution."""

import re
from datetime import datetime
from typing import Callable, Optional

MACRO_PATTERN = re.compile(r"\{\{(\w+)\}\}")


class MacroExpander:
    """
    Expands ``{{name}}`` macros from a table of values.

    ``{{date}}`` and ``{{time}}`` are always available. Unknown macros are
    left in place.

    Usage:
        expand = MacroExpander({"user": "Alice", "char": "Bot"})
        expand("{{char}} greets {{user}}")  # "Bot greets Alice"
    """

    def __init__(
        self,
        variables: Optional[dict[str, str]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.variables = dict(variables or {})
        self.clock = clock

    def _builtins(self) -> dict[str, str]:
        now = self.clock()
        return {
            "date": now.strftime("%B %d, %Y"),
            "time": now.strftime("%I:%M %p"),
        }

    def __call__(self, text: str) -> str:
        values = {**self._builtins(), **self.variables}

        def replace(match: re.Match) -> str:
            name = match.group(1)
            if name in values:
                return str(values[name])
            return match.group(0)

        return MACRO_PATTERN.sub(replace, text)
