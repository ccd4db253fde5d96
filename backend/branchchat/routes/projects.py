"""Project folders and their reference files."""

from __future__ import annotations

import base64
import logging

from fastapi import APIRouter, HTTPException, UploadFile

from ..schemas import ProjectCreate, ProjectUpdate
from ..services import projects as project_service
from ..services.content_blocks import Attachment

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["projects"])


async def _require_project(project_id: int):
    project = await project_service.get_project(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.get("/projects")
async def list_projects() -> list[dict[str, object]]:
    """Return projects, most recently active first."""

    return [project_service.serialize_project(p) for p in await project_service.list_projects()]


@router.post("/projects")
async def create_project(payload: ProjectCreate) -> dict[str, object]:
    project = await project_service.create_project(payload.name, instructions=payload.instructions)
    return project_service.serialize_project(project)


@router.get("/projects/{project_id}")
async def get_project(project_id: int) -> dict[str, object]:
    return project_service.serialize_project(await _require_project(project_id))


@router.patch("/projects/{project_id}")
async def update_project(project_id: int, payload: ProjectUpdate) -> dict[str, object]:
    changes = payload.model_dump(exclude_unset=True)
    if "name" in changes and not changes["name"]:
        raise HTTPException(status_code=400, detail="Project name is required")
    updated = await project_service.update_project(project_id, **changes)
    if updated is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return project_service.serialize_project(updated)


@router.delete("/projects/{project_id}")
async def remove_project(project_id: int) -> dict[str, str]:
    deleted = await project_service.delete_project(project_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Project not found")
    return {"status": "deleted"}


@router.get("/projects/{project_id}/files")
async def list_project_files(project_id: int) -> list[dict[str, object]]:
    await _require_project(project_id)
    return [project_service.serialize_project_file(f) for f in await project_service.list_project_files(project_id)]


@router.post("/projects/{project_id}/files")
async def upload_project_file(project_id: int, file: UploadFile) -> dict[str, object]:
    """Store an uploaded image, PDF or text file with the project."""

    await _require_project(project_id)
    content = await file.read()
    attachment = Attachment(
        filename=file.filename or "upload",
        mime_type=file.content_type or "application/octet-stream",
        data=base64.b64encode(content).decode("ascii"),
        size=len(content),
    )
    row = await project_service.create_project_file(project_id, attachment)
    if row is None:
        raise HTTPException(status_code=400, detail=f"Unsupported file type: {attachment.mime_type}")
    logger.info("Stored project file %s for project %s", row.filename, project_id)
    return project_service.serialize_project_file(row)


@router.delete("/files/{file_id}")
async def remove_project_file(file_id: int) -> dict[str, str]:
    deleted = await project_service.delete_project_file(file_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="File not found")
    return {"status": "deleted"}
