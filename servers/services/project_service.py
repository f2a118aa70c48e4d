"""
Project business logic.
Handles projects, draft cards, chat history and the saved research canvas.
"""

from dataclasses import asdict
from typing import Dict, List, Optional

from ..logging_config import get_logger
from xhsnova.canvas import CanvasState
from xhsnova.database import Database
from xhsnova.exceptions import CardNotFoundError, ProjectNotFoundError

logger = get_logger(__name__)


def _present(updates: Dict) -> Dict:
    # An explicit null in a PATCH body leaves the field unchanged
    return {k: v for k, v in updates.items() if v is not None}


class ProjectService:
    """Service for project, card and message management."""

    def __init__(self, db: Database = None):
        self.db = db or Database()
        self.db.initialize_schema()

    # Projects

    def list_projects(self, user_id: Optional[str] = None) -> List[Dict]:
        return self.db.list_projects(user_id)

    def create_project(self, title: str, user_id: str = "", user_background: Optional[Dict] = None) -> Dict:
        project = self.db.create_project(title, user_id=user_id, user_background=user_background)
        logger.info(f"Created project {project['id']} ({title!r})")
        return project

    def get_project(self, project_id: str) -> Dict:
        """Project with its cards."""
        project = self.db.require_project(project_id)
        project['cards'] = self.db.list_cards(project_id)
        return project

    def update_project(self, project_id: str, updates: Dict) -> Dict:
        self.db.require_project(project_id)
        return self.db.update_project(project_id, **_present(updates))

    def delete_project(self, project_id: str) -> Dict:
        if not self.db.delete_project(project_id):
            raise ProjectNotFoundError(project_id)
        logger.info(f"Deleted project {project_id}")
        return {"success": True, "message": f"Project {project_id} deleted"}

    # Cards

    def list_cards(self, project_id: str) -> List[Dict]:
        self.db.require_project(project_id)
        return self.db.list_cards(project_id)

    def create_card(self, project_id: str, title: Optional[str], content: str, card_order: int) -> Dict:
        self.db.require_project(project_id)
        return self.db.create_card(project_id, title=title, content=content, card_order=card_order)

    def update_card(self, project_id: str, card_id: str, updates: Dict) -> Dict:
        if not self.db.get_card(card_id, project_id):
            raise CardNotFoundError(card_id, project_id)
        return self.db.update_card(card_id, **_present(updates))

    def delete_card(self, project_id: str, card_id: str) -> Dict:
        if not self.db.get_card(card_id, project_id):
            raise CardNotFoundError(card_id, project_id)
        self.db.delete_card(card_id)
        return {"success": True, "message": f"Card {card_id} deleted"}

    # Messages

    def get_messages(self, project_id: str, limit: Optional[int] = None) -> List[Dict]:
        self.db.require_project(project_id)
        return self.db.get_messages(project_id, limit)

    # Canvas

    def get_canvas(self, project_id: str) -> Dict:
        """
        Rebuild the research canvas from saved items.

        Returns:
            Dict with phase, keywords, canvas_items and insights
        """
        self.db.require_project(project_id)
        state = CanvasState()
        state.load_project_data(self.db, project_id)
        return {
            "project_id": project_id,
            "phase": state.phase,
            "keywords": state.keywords,
            "canvas_items": [asdict(item) for item in state.canvas_items],
            "insights": [asdict(item) for item in state.insights]
        }

    def clear_canvas(self, project_id: str) -> Dict:
        self.db.require_project(project_id)
        removed_items = self.db.delete_canvas_items(project_id)
        removed_insights = self.db.delete_insights(project_id)
        return {"success": True, "canvas_items_deleted": removed_items, "insights_deleted": removed_insights}

    def list_insights(self, project_id: str) -> List[Dict]:
        self.db.require_project(project_id)
        return self.db.list_insights(project_id)

    def delete_insights(self, project_id: str) -> Dict:
        self.db.require_project(project_id)
        return {"success": True, "insights_deleted": self.db.delete_insights(project_id)}
