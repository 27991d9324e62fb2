"""
Project API routes

Reads are public; create, update and delete need a logged-in session.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, status

from src.api.decoders import json_body
from src.api.dependencies import get_project_store, require_session
from src.api.schemas.project import Project, ProjectCreate, ProjectUpdate
from src.api.services.project_store import ProjectStore
from src.api.services.session_store import SessionData

router = APIRouter(prefix="/api/projects", tags=["Projects"])
logger = logging.getLogger(__name__)


@router.get("", response_model=List[Project], summary="List projects")
async def list_projects(store: ProjectStore = Depends(get_project_store)):
    """All projects, most recently updated first."""
    return store.list()


@router.post(
    "",
    response_model=Project,
    status_code=status.HTTP_201_CREATED,
    summary="Create a project",
    responses={
        400: {"description": "Malformed body"},
        401: {"description": "No active session"},
        409: {"description": "Project id already taken"},
    },
)
async def create_project(
    session: SessionData = Depends(require_session),
    payload: ProjectCreate = Depends(json_body(ProjectCreate)),
    store: ProjectStore = Depends(get_project_store),
):
    """
    Create a project. ``id`` is generated when omitted; ``tags`` may be a
    list or a comma/space separated string.
    """
    project = store.create(payload)
    logger.info(f"{session.user.username} created project {project.id}")
    return project


@router.get("/{project_id}", response_model=Project, summary="Get one project")
async def get_project(project_id: str, store: ProjectStore = Depends(get_project_store)):
    return store.get(project_id)


@router.put("/{project_id}", response_model=Project, summary="Replace a project")
async def replace_project(
    project_id: str,
    session: SessionData = Depends(require_session),
    payload: ProjectCreate = Depends(json_body(ProjectCreate)),
    store: ProjectStore = Depends(get_project_store),
):
    """Fields left out of the body are reset to their defaults. ``id`` in the body is ignored."""
    return store.update(project_id, payload.model_dump(exclude={"id"}), replace=True)


@router.patch("/{project_id}", response_model=Project, summary="Update project fields")
async def update_project(
    project_id: str,
    session: SessionData = Depends(require_session),
    payload: ProjectUpdate = Depends(json_body(ProjectUpdate)),
    store: ProjectStore = Depends(get_project_store),
):
    return store.update(project_id, payload.changes())


@router.delete("/{project_id}", summary="Delete a project")
async def delete_project(
    project_id: str,
    session: SessionData = Depends(require_session),
    store: ProjectStore = Depends(get_project_store),
):
    store.delete(project_id)
    logger.info(f"{session.user.username} deleted project {project_id}")
    return {"deleted": project_id}
