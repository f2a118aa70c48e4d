"""
Database Module - SQLite persistence gateway.

Stores everything a project view needs:
- projects (title, owner, upstream conversation id, user background)
- cards (the post drafts being written)
- chat_messages (user/assistant turns, raw LLM output for auditing)
- canvas_items (scraped reference posts grouped by keyword)
- insights (research summaries derived from the canvas)

Each call runs in its own transaction; nothing spans calls.
"""

import json
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .config import config
from .exceptions import DatabaseError, ProjectNotFoundError
from .logging_config import get_logger

logger = get_logger(__name__)

CANVAS_ITEM_FIELDS = [
    'external_id', 'type', 'title', 'content', 'keyword', 'author',
    'author_avatar', 'like_count', 'collect_count', 'comment_count',
    'share_count', 'cover_url', 'url', 'platform', 'ip_location', 'tags',
    'create_time'
]

INSIGHT_FIELDS = ['external_id', 'type', 'title', 'content']


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


def _loads(value: Optional[str], default: Any) -> Any:
    if value is None:
        return default
    try:
        return json.loads(value)
    except (TypeError, json.JSONDecodeError):
        return default


class Database:
    """SQLite implementation of the persistence gateway."""

    def __init__(self, db_path: Path = None):
        self.db_path = Path(db_path or config.db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def get_connection(self):
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise DatabaseError(f"Database operation failed: {e}", original_error=e) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def initialize_schema(self) -> None:
        """Create all tables."""
        with self.get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS projects (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL DEFAULT '',
                    user_id TEXT NOT NULL DEFAULT '',
                    conversation_id TEXT,
                    user_background TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS cards (
                    id TEXT PRIMARY KEY,
                    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
                    title TEXT,
                    content TEXT NOT NULL DEFAULT '',
                    card_order INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS chat_messages (
                    id TEXT PRIMARY KEY,
                    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL DEFAULT '',
                    llm_raw_output TEXT,
                    associated_card_id TEXT,
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS canvas_items (
                    id TEXT PRIMARY KEY,
                    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
                    external_id TEXT,
                    type TEXT NOT NULL DEFAULT 'canvas',
                    title TEXT,
                    content TEXT DEFAULT '',
                    keyword TEXT,
                    author TEXT,
                    author_avatar TEXT,
                    like_count INTEGER DEFAULT 0,
                    collect_count INTEGER DEFAULT 0,
                    comment_count INTEGER DEFAULT 0,
                    share_count INTEGER DEFAULT 0,
                    cover_url TEXT,
                    url TEXT,
                    platform TEXT DEFAULT 'xiaohongshu',
                    ip_location TEXT,
                    tags TEXT DEFAULT '[]',
                    create_time TEXT,
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS insights (
                    id TEXT PRIMARY KEY,
                    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
                    external_id TEXT,
                    type TEXT NOT NULL DEFAULT 'insight',
                    title TEXT,
                    content TEXT DEFAULT '',
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_cards_project ON cards(project_id, card_order)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_messages_project ON chat_messages(project_id, created_at)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_canvas_project ON canvas_items(project_id, created_at)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_insights_project ON insights(project_id, created_at)")

    # =========================================================================
    # PROJECT METHODS
    # =========================================================================

    @staticmethod
    def _project_row(row: sqlite3.Row) -> Dict:
        project = dict(row)
        project['user_background'] = _loads(project.get('user_background'), None)
        return project

    def create_project(self, title: str, user_id: str = "", user_background: Optional[Dict] = None) -> Dict:
        project_id = _new_id()
        now = _now()
        with self.get_connection() as conn:
            conn.execute(
                "INSERT INTO projects (id, title, user_id, user_background, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (project_id, title, user_id,
                 json.dumps(user_background, ensure_ascii=False) if user_background is not None else None,
                 now, now)
            )
        return self.get_project(project_id)

    def get_project(self, project_id: str) -> Optional[Dict]:
        with self.get_connection() as conn:
            row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
            return self._project_row(row) if row else None

    def require_project(self, project_id: str) -> Dict:
        project = self.get_project(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def list_projects(self, user_id: Optional[str] = None) -> List[Dict]:
        """List projects, most recently updated first."""
        with self.get_connection() as conn:
            if user_id is None:
                rows = conn.execute("SELECT * FROM projects ORDER BY updated_at DESC").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM projects WHERE user_id = ? ORDER BY updated_at DESC", (user_id,)
                ).fetchall()
            return [self._project_row(row) for row in rows]

    def update_project(self, project_id: str, **kwargs) -> Optional[Dict]:
        allowed = ['title', 'user_background', 'conversation_id']
        updates = {}
        for k, v in kwargs.items():
            if k in allowed:
                if k == 'user_background' and v is not None:
                    updates[k] = json.dumps(v, ensure_ascii=False)
                else:
                    updates[k] = v

        if not updates:
            return self.get_project(project_id)

        updates['updated_at'] = _now()
        set_clause = ", ".join(f"{k} = ?" for k in updates.keys())
        with self.get_connection() as conn:
            conn.execute(f"UPDATE projects SET {set_clause} WHERE id = ?", list(updates.values()) + [project_id])
        return self.get_project(project_id)

    def update_project_conversation_id(self, project_id: str, conversation_id: str) -> Optional[Dict]:
        return self.update_project(project_id, conversation_id=conversation_id)

    def delete_project(self, project_id: str) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
            return cursor.rowcount > 0

    # =========================================================================
    # CARD METHODS
    # =========================================================================

    def create_card(self, project_id: str, title: Optional[str] = None, content: str = "", card_order: int = 0) -> Dict:
        card_id = _new_id()
        now = _now()
        with self.get_connection() as conn:
            conn.execute(
                "INSERT INTO cards (id, project_id, title, content, card_order, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (card_id, project_id, title, content or "", card_order, now, now)
            )
        return self.get_card(card_id)

    def get_card(self, card_id: str, project_id: Optional[str] = None) -> Optional[Dict]:
        with self.get_connection() as conn:
            if project_id is None:
                row = conn.execute("SELECT * FROM cards WHERE id = ?", (card_id,)).fetchone()
            else:
                row = conn.execute(
                    "SELECT * FROM cards WHERE id = ? AND project_id = ?", (card_id, project_id)
                ).fetchone()
            return dict(row) if row else None

    def list_cards(self, project_id: str) -> List[Dict]:
        with self.get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM cards WHERE project_id = ? ORDER BY card_order, created_at", (project_id,)
            ).fetchall()
            return [dict(row) for row in rows]

    def find_card_by_title(self, project_id: str, title: str) -> Optional[Dict]:
        """Exact title match within a project (oldest card wins on duplicates)."""
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM cards WHERE project_id = ? AND title = ? ORDER BY created_at LIMIT 1",
                (project_id, title)
            ).fetchone()
            return dict(row) if row else None

    def update_card(self, card_id: str, **kwargs) -> Optional[Dict]:
        allowed = ['title', 'content', 'card_order']
        updates = {k: v for k, v in kwargs.items() if k in allowed}
        if not updates:
            return self.get_card(card_id)

        updates['updated_at'] = _now()
        set_clause = ", ".join(f"{k} = ?" for k in updates.keys())
        with self.get_connection() as conn:
            conn.execute(f"UPDATE cards SET {set_clause} WHERE id = ?", list(updates.values()) + [card_id])
        return self.get_card(card_id)

    def update_card_by_title(self, project_id: str, title: str, content: str) -> Optional[Dict]:
        """Overwrite the content of the card with this exact title; None if absent."""
        card = self.find_card_by_title(project_id, title)
        if card is None:
            return None
        return self.update_card(card['id'], content=content)

    def delete_card(self, card_id: str) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute("DELETE FROM cards WHERE id = ?", (card_id,))
            return cursor.rowcount > 0

    # =========================================================================
    # CHAT MESSAGE METHODS
    # =========================================================================

    @staticmethod
    def _message_row(row: sqlite3.Row) -> Dict:
        message = dict(row)
        message['llm_raw_output'] = _loads(message.get('llm_raw_output'), None)
        return message

    def create_message(
        self,
        project_id: str,
        role: str,
        content: str,
        llm_raw_output: Optional[Any] = None,
        associated_card_id: Optional[str] = None
    ) -> Dict:
        message_id = _new_id()
        with self.get_connection() as conn:
            conn.execute(
                "INSERT INTO chat_messages (id, project_id, role, content, llm_raw_output, associated_card_id, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (message_id, project_id, role, content,
                 json.dumps(llm_raw_output, ensure_ascii=False) if llm_raw_output is not None else None,
                 associated_card_id, _now())
            )
            row = conn.execute("SELECT * FROM chat_messages WHERE id = ?", (message_id,)).fetchone()
            return self._message_row(row)

    def get_messages(self, project_id: str, limit: Optional[int] = None) -> List[Dict]:
        """Messages in chronological order; with a limit, the most recent ones."""
        with self.get_connection() as conn:
            if limit:
                rows = conn.execute(
                    "SELECT * FROM (SELECT rowid AS seq, * FROM chat_messages WHERE project_id = ? "
                    "ORDER BY created_at DESC, seq DESC LIMIT ?) ORDER BY created_at, seq",
                    (project_id, limit)
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT rowid AS seq, * FROM chat_messages WHERE project_id = ? ORDER BY created_at, seq",
                    (project_id,)
                ).fetchall()
            messages = []
            for row in rows:
                message = self._message_row(row)
                message.pop('seq', None)
                messages.append(message)
            return messages

    # =========================================================================
    # CANVAS ITEM METHODS
    # =========================================================================

    @staticmethod
    def _canvas_row(row: sqlite3.Row) -> Dict:
        item = dict(row)
        item['tags'] = _loads(item.get('tags'), [])
        return item

    def bulk_create_canvas_items(self, project_id: str, items: Iterable[Dict]) -> List[Dict]:
        rows = []
        now = _now()
        for item in items:
            data = {k: item.get(k) for k in CANVAS_ITEM_FIELDS}
            data['type'] = data['type'] or 'canvas'
            data['platform'] = data['platform'] or 'xiaohongshu'
            data['content'] = data['content'] or ''
            data['tags'] = json.dumps(data['tags'] or [], ensure_ascii=False)
            for counter in ('like_count', 'collect_count', 'comment_count', 'share_count'):
                data[counter] = data[counter] or 0
            if data['create_time'] is not None:
                data['create_time'] = str(data['create_time'])
            rows.append((_new_id(), project_id, *[data[k] for k in CANVAS_ITEM_FIELDS], now))

        if not rows:
            return []

        columns = ", ".join(['id', 'project_id'] + CANVAS_ITEM_FIELDS + ['created_at'])
        placeholders = ", ".join("?" * (len(CANVAS_ITEM_FIELDS) + 3))
        with self.get_connection() as conn:
            conn.executemany(f"INSERT INTO canvas_items ({columns}) VALUES ({placeholders})", rows)
            ids = [row[0] for row in rows]
            fetched = conn.execute(
                f"SELECT * FROM canvas_items WHERE id IN ({', '.join('?' * len(ids))})", ids
            ).fetchall()
        by_id = {row['id']: self._canvas_row(row) for row in fetched}
        return [by_id[i] for i in ids]

    def list_canvas_items(self, project_id: str) -> List[Dict]:
        with self.get_connection() as conn:
            rows = conn.execute(
                "SELECT rowid AS seq, * FROM canvas_items WHERE project_id = ? ORDER BY created_at, seq",
                (project_id,)
            ).fetchall()
        items = []
        for row in rows:
            item = self._canvas_row(row)
            item.pop('seq', None)
            items.append(item)
        return items

    def delete_canvas_items(self, project_id: str) -> int:
        with self.get_connection() as conn:
            return conn.execute("DELETE FROM canvas_items WHERE project_id = ?", (project_id,)).rowcount

    # =========================================================================
    # INSIGHT METHODS
    # =========================================================================

    def bulk_create_insights(self, project_id: str, insights: Iterable[Dict]) -> List[Dict]:
        now = _now()
        rows = [
            (_new_id(), project_id, insight.get('external_id'), insight.get('type') or 'insight',
             insight.get('title'), insight.get('content') or '', now)
            for insight in insights
        ]
        if not rows:
            return []

        with self.get_connection() as conn:
            conn.executemany(
                "INSERT INTO insights (id, project_id, external_id, type, title, content, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                rows
            )
            ids = [row[0] for row in rows]
            fetched = conn.execute(
                f"SELECT * FROM insights WHERE id IN ({', '.join('?' * len(ids))})", ids
            ).fetchall()
        by_id = {row['id']: dict(row) for row in fetched}
        return [by_id[i] for i in ids]

    def list_insights(self, project_id: str) -> List[Dict]:
        with self.get_connection() as conn:
            rows = conn.execute(
                "SELECT rowid AS seq, * FROM insights WHERE project_id = ? ORDER BY created_at, seq",
                (project_id,)
            ).fetchall()
        insights = []
        for row in rows:
            insight = dict(row)
            insight.pop('seq', None)
            insights.append(insight)
        return insights

    def delete_insights(self, project_id: str) -> int:
        with self.get_connection() as conn:
            return conn.execute("DELETE FROM insights WHERE project_id = ?", (project_id,)).rowcount
