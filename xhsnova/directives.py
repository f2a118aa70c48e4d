"""
Card directives embedded in assistant text.

The assistant can create or rewrite draft cards by emitting inline markup:

    <new_xhs_card title="OPTIONAL_TITLE">CONTENT</new_xhs_card>
    <update_xhs_card card_ref_id="EXACT_EXISTING_TITLE">CONTENT</update_xhs_card>

Extraction visits each `<` of the text once (no regex backtracking), so
parse time stays linear however many broken tags the answer contains.
Closing tags are paired with a stack per tag name, so a directive nested
inside another stays part of the outer content. Opening tags without a
matching close, or whose attributes run past the next `<`, are left as
plain text.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from .config import (
    DEFAULT_CARD_TITLE_PREFIX,
    NEW_CARD_PLACEHOLDER,
    UPDATED_CARD_PLACEHOLDER,
)
from .logging_config import get_logger

logger = get_logger(__name__)

CREATE = "create"
UPDATE = "update"

DIRECTIVE_TAGS = {
    "new_xhs_card": CREATE,
    "update_xhs_card": UPDATE,
}

PLACEHOLDERS = {
    CREATE: NEW_CARD_PLACEHOLDER,
    UPDATE: UPDATED_CARD_PLACEHOLDER,
}


@dataclass
class Directive:
    """One directive found in the assistant text."""
    action: str
    content: str
    attributes: Dict[str, str] = field(default_factory=dict)
    start: int = 0
    end: int = 0

    @property
    def title(self) -> Optional[str]:
        return self.attributes.get("title") or None

    @property
    def card_ref(self) -> Optional[str]:
        return self.attributes.get("card_ref_id")

    @property
    def placeholder(self) -> str:
        return PLACEHOLDERS[self.action]


@dataclass
class DirectiveOutcome:
    """What applying a batch of directives did to the project's cards."""
    created: List[Dict] = field(default_factory=list)
    updated: List[Dict] = field(default_factory=list)
    skipped: List[Directive] = field(default_factory=list)
    associated_card_id: Optional[str] = None


def default_card_title(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"{DEFAULT_CARD_TITLE_PREFIX} {now.date().isoformat()}"


def _is_tag_boundary(text: str, index: int) -> bool:
    if index >= len(text):
        return False
    char = text[index]
    return char.isspace() or char in ">/"


def _tag_tokens(text: str) -> List[Tuple[int, str, bool]]:
    """
    Every directive opening and closing tag as (position, tag, is_close).

    One pass over the `<` positions of the text.
    """
    tokens = []
    index = text.find("<")
    while index != -1:
        if text.startswith("/", index + 1):
            for tag in DIRECTIVE_TAGS:
                if text.startswith(tag + ">", index + 2):
                    tokens.append((index, tag, True))
                    break
        else:
            for tag in DIRECTIVE_TAGS:
                if text.startswith(tag, index + 1) and _is_tag_boundary(text, index + 1 + len(tag)):
                    tokens.append((index, tag, False))
                    break
        index = text.find("<", index + 1)
    return tokens


def _match_closes(tokens: List[Tuple[int, str, bool]]) -> Dict[int, int]:
    """Pair each opening tag with its closing tag, innermost first, per tag name."""
    open_stacks = {tag: [] for tag in DIRECTIVE_TAGS}
    matches = {}
    for position, tag, is_close in tokens:
        if not is_close:
            open_stacks[tag].append(position)
        elif open_stacks[tag]:
            matches[open_stacks[tag].pop()] = position
    return matches


def _parse_attributes(text: str, index: int) -> Optional[Tuple[Dict[str, str], int]]:
    """
    Parse `name="value"` pairs up to the closing `>` of an opening tag.

    The tag may not run past the next `<`.

    Returns:
        (attributes, index just past `>`), or None when the tag is malformed.
    """
    attributes = {}
    length = text.find("<", index)
    if length == -1:
        length = len(text)
    while index < length:
        char = text[index]
        if char.isspace():
            index += 1
            continue
        if char == ">":
            return attributes, index + 1

        name_start = index
        while index < length and (text[index].isalnum() or text[index] in "_-:"):
            index += 1
        name = text[name_start:index]
        if not name:
            return None

        while index < length and text[index].isspace():
            index += 1
        if index >= length or text[index] != "=":
            return None
        index += 1
        while index < length and text[index].isspace():
            index += 1
        if index >= length or text[index] != '"':
            return None

        value_end = text.find('"', index + 1, length)
        if value_end == -1:
            return None
        attributes[name] = text[index + 1:value_end]
        index = value_end + 1
    return None


def extract_directives(text: str) -> List[Directive]:
    """Return every top-level directive in the order it appears in the text."""
    tokens = _tag_tokens(text)
    matches = _match_closes(tokens)

    directives = []
    position = 0
    for open_at, tag, is_close in tokens:
        if is_close or open_at < position or open_at not in matches:
            continue

        parsed = _parse_attributes(text, open_at + len(tag) + 1)
        if parsed is None:
            continue
        attributes, content_start = parsed

        close_at = matches[open_at]
        end = close_at + len(tag) + 3
        directives.append(Directive(
            action=DIRECTIVE_TAGS[tag],
            content=text[content_start:close_at].strip(),
            attributes=attributes,
            start=open_at,
            end=end
        ))
        position = end
    return directives


def render_display_text(text: str, directives: Optional[List[Directive]] = None) -> str:
    """Replace each directive span with its short human-readable placeholder."""
    if directives is None:
        directives = extract_directives(text)
    pieces = []
    cursor = 0
    for directive in directives:
        pieces.append(text[cursor:directive.start])
        pieces.append(directive.placeholder)
        cursor = directive.end
    pieces.append(text[cursor:])
    return "".join(pieces)


def apply_directives(gateway, project_id: str, directives: List[Directive]) -> DirectiveOutcome:
    """
    Apply directives to the project's cards in text order.

    Creates insert a new card; updates overwrite the content of the card whose
    title matches exactly. An update naming an unknown card is logged and
    skipped; the remaining directives still run.

    Args:
        gateway: Persistence gateway (see xhsnova.database.Database)
        project_id: Project the cards belong to
        directives: Output of extract_directives
    """
    outcome = DirectiveOutcome()

    for directive in directives:
        if directive.action == CREATE:
            title = directive.title or default_card_title()
            logger.info(f"Creating new card: {title!r} ({len(directive.content)} chars)")
            card = gateway.create_card(project_id, title=title, content=directive.content, card_order=999)
            outcome.created.append(card)
            outcome.associated_card_id = card["id"]
            continue

        if not directive.card_ref:
            logger.warning("Update directive without card_ref_id skipped")
            outcome.skipped.append(directive)
            continue

        logger.info(f"Updating card: {directive.card_ref!r}")
        card = gateway.update_card_by_title(project_id, directive.card_ref, directive.content)
        if card is None:
            logger.error(f"Card not found for update: {directive.card_ref!r}")
            outcome.skipped.append(directive)
            continue
        outcome.updated.append(card)
        outcome.associated_card_id = card["id"]

    return outcome
