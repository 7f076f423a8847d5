"""Search/replace edit blocks embedded in backend replies."""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable

logger = logging.getLogger(__name__)


# A block is <search>...</search> followed, after optional whitespace, by
# <replace>...</replace>. The search body may not contain another <search>
# opener, so a dangling opener is skipped instead of swallowing the next block.
EDIT_BLOCK_PATTERN = re.compile(
    r"<search>((?:(?!<search>).)*?)</search>\s*<replace>(.*?)</replace>",
    re.DOTALL,
)


@dataclass(frozen=True)
class Edit:
    """A single search/replace instruction."""

    search: str
    replace: str


@dataclass
class EditReport:
    """Outcome of folding a list of edits over a draft."""

    content: str
    applied: list[Edit] = field(default_factory=list)
    missed: list[Edit] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.applied)


def parse_edits(reply: str) -> list[Edit]:
    """
    Extract every well-formed search/replace block from a reply.

    Blocks are returned in document order with each span trimmed. Text that
    does not form a complete block is ignored.

    Example:
        >>> parse_edits("<search>A</search><replace>B</replace>")
        [Edit(search='A', replace='B')]
    """
    if not reply:
        return []

    return [
        Edit(search=match.group(1).strip(), replace=match.group(2).strip())
        for match in EDIT_BLOCK_PATTERN.finditer(reply)
    ]


def apply_edit(content: str, edit: Edit) -> str:
    """
    Replace the first occurrence of ``edit.search`` in ``content``.

    Content is returned unchanged when the search text is absent; this is
    logged and never raised. An empty search string is also treated as
    absent, unlike plain substring semantics where "" matches at position 0
    and would prepend the replacement to the draft.
    """
    if edit.search and edit.search in content:
        return content.replace(edit.search, edit.replace, 1)

    logger.warning(f"Search text not found: {edit.search[:80]!r}")
    return content


def apply_edits(content: str, edits: Iterable[Edit]) -> EditReport:
    """Apply edits left to right; each edit sees the result of the previous one."""
    report = EditReport(content=content)
    for edit in edits:
        updated = apply_edit(report.content, edit)
        found = bool(edit.search) and edit.search in report.content
        (report.applied if found else report.missed).append(edit)
        report.content = updated
    return report
