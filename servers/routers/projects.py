"""
Routes for project management.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException

from ..services import ProjectService
from ..models import CardCreateRequest, CardUpdateRequest, ProjectCreateRequest, ProjectUpdateRequest
from xhsnova import __version__
from xhsnova.exceptions import CardNotFoundError, NovaError, ProjectNotFoundError

router = APIRouter(prefix="/api", tags=["projects"])
project_service = ProjectService()


@router.get("/projects")
async def list_projects(user_id: Optional[str] = None):
    """Get list of all projects."""
    return {"projects": project_service.list_projects(user_id)}


@router.post("/projects")
async def create_project(project: ProjectCreateRequest):
    """Create a new project."""
    try:
        return project_service.create_project(project.title, project.user_id, project.user_background)
    except NovaError as e:
        raise HTTPException(status_code=500, detail=e.message)


@router.get("/projects/{project_id}")
async def get_project(project_id: str):
    """Get a project with its cards."""
    try:
        return project_service.get_project(project_id)
    except ProjectNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.patch("/projects/{project_id}")
async def update_project(project_id: str, updates: ProjectUpdateRequest):
    try:
        return project_service.update_project(project_id, updates.model_dump(exclude_unset=True))
    except ProjectNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except NovaError as e:
        raise HTTPException(status_code=500, detail=e.message)


@router.delete("/projects/{project_id}")
async def delete_project(project_id: str):
    """Delete a project and everything it owns."""
    try:
        return project_service.delete_project(project_id)
    except ProjectNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.get("/projects/{project_id}/cards")
async def list_cards(project_id: str):
    try:
        return {"cards": project_service.list_cards(project_id)}
    except ProjectNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.post("/projects/{project_id}/cards")
async def create_card(project_id: str, card: CardCreateRequest):
    try:
        return project_service.create_card(project_id, card.title, card.content, card.card_order)
    except ProjectNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.patch("/projects/{project_id}/cards/{card_id}")
async def update_card(project_id: str, card_id: str, updates: CardUpdateRequest):
    try:
        return project_service.update_card(project_id, card_id, updates.model_dump(exclude_unset=True))
    except CardNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except NovaError as e:
        raise HTTPException(status_code=500, detail=e.message)


@router.delete("/projects/{project_id}/cards/{card_id}")
async def delete_card(project_id: str, card_id: str):
    try:
        return project_service.delete_card(project_id, card_id)
    except CardNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.get("/projects/{project_id}/messages")
async def get_messages(project_id: str, limit: Optional[int] = None):
    """Chat history, oldest first."""
    try:
        return {"messages": project_service.get_messages(project_id, limit)}
    except ProjectNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.get("/projects/{project_id}/canvas")
async def get_canvas(project_id: str):
    """Saved research canvas rebuilt as a keyword grid."""
    try:
        return project_service.get_canvas(project_id)
    except ProjectNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.delete("/projects/{project_id}/canvas")
async def clear_canvas(project_id: str):
    try:
        return project_service.clear_canvas(project_id)
    except ProjectNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.get("/projects/{project_id}/insights")
async def list_insights(project_id: str):
    try:
        return {"insights": project_service.list_insights(project_id)}
    except ProjectNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.delete("/projects/{project_id}/insights")
async def delete_insights(project_id: str):
    try:
        return project_service.delete_insights(project_id)
    except ProjectNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "Nova API", "version": __version__}
