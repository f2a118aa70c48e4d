"""
Canvas reconciliation.

A project view shows scraped reference posts in a grid with one band of
three slots per research keyword. The research stream first announces the
keyword list, which immediately lays out loading placeholders, and then
delivers cards keyword by keyword. Each card batch overwrites the slots of
its band in place, so the grid never changes size until a new keyword list
arrives.

CanvasState is owned by a single project view. Call reset() on project
switch.
"""

import uuid
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Set

from .config import PLACEHOLDER_TITLE_SUFFIX, SLOTS_PER_KEYWORD
from .logging_config import get_logger
from .streaming.events import CardsEvent, InsightEvent, KeywordsEvent, StreamEvent

logger = get_logger(__name__)

EMPTY = "empty"
KEYWORDS_KNOWN = "keywords-known"
POPULATING = "populating"
SETTLED = "settled"

_QUOTES_AND_SPACE = "\"' \t\r\n　"


def normalize_keyword(keyword: str) -> str:
    """Strip leading/trailing quote and whitespace characters."""
    return (keyword or "").strip(_QUOTES_AND_SPACE).strip()


def resolve_keyword_index(keywords: List[str], label: str) -> int:
    """
    Find the slot group for an incoming keyword label.

    Exact match after normalization wins. Otherwise the first keyword whose
    normalized form contains the label, or is contained by it, is used.
    Containment can pick a shorter keyword that prefixes a longer one
    ("护肤" vs "春季护肤").

    Returns:
        Group index, or -1 when nothing matches.
    """
    target = normalize_keyword(label)
    normalized = [normalize_keyword(kw) for kw in keywords]

    for index, candidate in enumerate(normalized):
        if candidate == target:
            return index

    for index, candidate in enumerate(normalized):
        if target in candidate or candidate in target:
            return index

    return -1


@dataclass
class CanvasSlot:
    """One addressable cell of the canvas (or one insight)."""
    id: str
    external_id: Optional[str] = None
    type: str = "canvas"
    title: str = ""
    content: str = ""
    keyword: Optional[str] = None
    is_selected: bool = False
    is_disabled: bool = False
    is_loading: bool = False
    author: Optional[str] = None
    author_avatar: Optional[str] = None
    like_count: Optional[int] = None
    collect_count: Optional[int] = None
    comment_count: Optional[int] = None
    share_count: Optional[int] = None
    cover_url: Optional[str] = None
    url: Optional[str] = None
    platform: Optional[str] = None
    ip_location: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    create_time: Optional[str] = None

    @classmethod
    def placeholder(cls, keyword: str, keyword_index: int, card_index: int) -> "CanvasSlot":
        slot_id = f"placeholder-{keyword_index}-{card_index}"
        return cls(
            id=slot_id,
            external_id=slot_id,
            title=f"{keyword}{PLACEHOLDER_TITLE_SUFFIX}",
            keyword=keyword,
            is_loading=True
        )

    @classmethod
    def from_card(cls, card: Dict, keyword: str, fallback_id: Optional[str] = None) -> "CanvasSlot":
        card_id = card.get("id")
        return cls(
            id=str(card_id) if card_id is not None else (fallback_id or f"card-{uuid.uuid4().hex}"),
            external_id=card.get("external_id"),
            title=card.get("title") or "",
            content=card.get("content") or "",
            keyword=keyword,
            author=card.get("author"),
            author_avatar=card.get("author_avatar"),
            like_count=card.get("like_count"),
            collect_count=card.get("collect_count"),
            comment_count=card.get("comment_count"),
            share_count=card.get("share_count"),
            cover_url=card.get("cover_url"),
            url=card.get("url"),
            platform=card.get("platform") or "xiaohongshu",
            ip_location=card.get("ip_location"),
            tags=list(card.get("tags") or []),
            create_time=card.get("create_time"),
            is_loading=False
        )

    @classmethod
    def from_record(cls, record: Dict) -> "CanvasSlot":
        """Build a slot from a persisted canvas_items row."""
        slot = cls.from_card(record, record.get("keyword") or "")
        slot.id = record["id"]
        slot.like_count = record.get("like_count") or 0
        slot.collect_count = record.get("collect_count") or 0
        slot.comment_count = record.get("comment_count") or 0
        slot.share_count = record.get("share_count") or 0
        return slot


class CanvasState:
    """Keyword-indexed canvas grid, insights, selections and references."""

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        """Clear every field (used on project switch)."""
        self.canvas_items: List[CanvasSlot] = []
        self.insights: List[CanvasSlot] = []
        self.keywords: List[str] = []
        self.loading: bool = False
        self.selected_canvas_items: Set[str] = set()
        self.selected_insights: Set[str] = set()
        self.canvas_references: List[CanvasSlot] = []
        self.current_project_id: Optional[str] = None
        self._insight_counter = 0

    def set_current_project(self, project_id: str) -> None:
        self.current_project_id = project_id

    @property
    def phase(self) -> str:
        if not self.keywords:
            return EMPTY
        loading = sum(1 for slot in self.canvas_items if slot.is_loading)
        if loading == len(self.canvas_items):
            return KEYWORDS_KNOWN
        if loading:
            return POPULATING
        return SETTLED

    # =========================================================================
    # KEYWORDS AND GRID
    # =========================================================================

    def set_keywords(self, keywords: Iterable[str]) -> None:
        self.keywords = [normalize_keyword(keyword) for keyword in keywords]

    def add_keywords(self, keywords: Iterable[str]) -> None:
        """Merge keywords, keeping first-seen order and dropping duplicates."""
        merged = list(self.keywords)
        for keyword in map(normalize_keyword, keywords):
            if keyword not in merged:
                merged.append(keyword)
        self.keywords = merged

    def initialize_placeholders(self, keywords: Iterable[str]) -> None:
        """Lay out exactly SLOTS_PER_KEYWORD loading slots for every keyword."""
        self.canvas_items = [
            CanvasSlot.placeholder(keyword, keyword_index, card_index)
            for keyword_index, keyword in enumerate(keywords)
            for card_index in range(SLOTS_PER_KEYWORD)
        ]

    def update_canvas_cards(self, keyword: str, cards: List[Dict]) -> int:
        """
        Overwrite the band belonging to `keyword` with arriving cards.

        Returns:
            Number of slots written. Cards beyond the band or the grid are ignored.
        """
        keyword_index = resolve_keyword_index(self.keywords, keyword)
        if keyword_index == -1:
            logger.error(f"Could not match keyword: {keyword!r}")
            return 0

        placed = 0
        for card_index, card in enumerate(cards[:SLOTS_PER_KEYWORD]):
            position = keyword_index * SLOTS_PER_KEYWORD + card_index
            if position < len(self.canvas_items):
                self.canvas_items[position] = CanvasSlot.from_card(
                    card, self.keywords[keyword_index], fallback_id=f"{keyword_index}-{card_index}"
                )
                placed += 1
        return placed

    def add_insight(self, title: Optional[str], content: str, insight_id: Optional[str] = None,
                    external_id: Optional[str] = None, keyword: Optional[str] = None) -> CanvasSlot:
        if not insight_id:
            self._insight_counter += 1
            insight_id = f"insight-{self._insight_counter}"
        insight = CanvasSlot(
            id=insight_id,
            external_id=external_id,
            type="insight",
            title=title or "",
            content=content,
            keyword=keyword
        )
        self.insights.append(insight)
        return insight

    def process_stream_event(self, event: StreamEvent) -> None:
        """Apply one decoded research-stream event to the canvas."""
        if isinstance(event, KeywordsEvent):
            logger.debug(f"Setting keywords: {event.keywords}")
            self.set_keywords(event.keywords)
            self.initialize_placeholders(self.keywords)
        elif isinstance(event, CardsEvent):
            logger.debug(f"Updating cards for keyword {event.keyword!r}: {len(event.cards)}")
            self.update_canvas_cards(event.keyword, event.cards)
        elif isinstance(event, InsightEvent) and event.text:
            self.add_insight(
                title=event.title,
                content=event.text,
                insight_id=event.get("id"),
                external_id=event.get("external_id"),
                keyword=event.get("keyword") if event.is_keyword_insight else None
            )

    def load_project_data(self, gateway, project_id: str) -> None:
        """Rebuild the canvas from persisted canvas items and insights."""
        self.loading = True
        self.current_project_id = project_id
        try:
            records = gateway.list_canvas_items(project_id)
            if records:
                self.canvas_items = [CanvasSlot.from_record(record) for record in records]
                self.keywords = []
                self.add_keywords(record["keyword"] for record in records if record.get("keyword"))

            insight_records = gateway.list_insights(project_id)
            if insight_records:
                self.insights = [
                    CanvasSlot(
                        id=record["id"],
                        external_id=record.get("external_id"),
                        type="insight",
                        title=record.get("title") or "",
                        content=record.get("content") or ""
                    )
                    for record in insight_records
                ]
            logger.info(f"Loaded canvas for {project_id}: {len(records)} items, {len(insight_records)} insights")
        finally:
            self.loading = False

    # =========================================================================
    # SELECTION
    # =========================================================================

    @staticmethod
    def _toggle(selected: Set[str], item_id: str) -> None:
        if item_id in selected:
            selected.discard(item_id)
        else:
            selected.add(item_id)

    def toggle_canvas_selection(self, item_id: str) -> None:
        self._toggle(self.selected_canvas_items, item_id)

    def toggle_insight_selection(self, item_id: str) -> None:
        self._toggle(self.selected_insights, item_id)

    def _batch_select(self, items: List[CanvasSlot], selected: Set[str], ids: Optional[Iterable[str]]) -> List[CanvasSlot]:
        wanted = set(selected if ids is None else ids)
        promoted = []
        for index, item in enumerate(items):
            if item.id in wanted and not item.is_disabled:
                items[index] = replace(item, is_selected=False)
                promoted.append(items[index])
        for item in promoted:
            self.add_to_canvas_references(item)
        selected.clear()
        return promoted

    def batch_select_canvas(self, ids: Optional[Iterable[str]] = None) -> List[CanvasSlot]:
        """Promote selected, non-disabled canvas items into the references."""
        return self._batch_select(self.canvas_items, self.selected_canvas_items, ids)

    def batch_select_insights(self, ids: Optional[Iterable[str]] = None) -> List[CanvasSlot]:
        return self._batch_select(self.insights, self.selected_insights, ids)

    @staticmethod
    def _batch_disable(items: List[CanvasSlot], selected: Set[str], ids: Optional[Iterable[str]]) -> None:
        wanted = set(selected if ids is None else ids)
        for index, item in enumerate(items):
            if item.id in wanted:
                items[index] = replace(item, is_disabled=True, is_selected=False)
        selected.clear()

    def batch_disable_canvas(self, ids: Optional[Iterable[str]] = None) -> None:
        self._batch_disable(self.canvas_items, self.selected_canvas_items, ids)

    def batch_disable_insights(self, ids: Optional[Iterable[str]] = None) -> None:
        self._batch_disable(self.insights, self.selected_insights, ids)

    @staticmethod
    def _restore(items: List[CanvasSlot], item_id: str) -> None:
        for index, item in enumerate(items):
            if item.id == item_id:
                items[index] = replace(item, is_disabled=False)

    def restore_canvas_item(self, item_id: str) -> None:
        self._restore(self.canvas_items, item_id)

    def restore_insight(self, item_id: str) -> None:
        self._restore(self.insights, item_id)

    def clear_selections(self) -> None:
        self.selected_canvas_items.clear()
        self.selected_insights.clear()

    def get_selected_canvas_items(self) -> List[CanvasSlot]:
        return [item for item in self.canvas_items if item.id in self.selected_canvas_items]

    def get_selected_insights(self) -> List[CanvasSlot]:
        return [item for item in self.insights if item.id in self.selected_insights]

    # =========================================================================
    # REFERENCES
    # =========================================================================

    def add_to_canvas_references(self, item: CanvasSlot) -> bool:
        """Add an item once; returns False when it is already referenced."""
        if any(ref.id == item.id for ref in self.canvas_references):
            return False
        self.canvas_references.append(replace(item, is_selected=True))
        return True

    def remove_from_canvas_references(self, item_id: str) -> None:
        self.canvas_references = [ref for ref in self.canvas_references if ref.id != item_id]

    def clear_canvas_references(self) -> None:
        self.canvas_references = []
