"""Project and project file storage operations."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..schemas import ProjectFileOut, ProjectOut
from ..storage import Project, ProjectFile, get_db_manager
from ..storage.models import utcnow
from .content_blocks import Attachment, stored_fields_for

logger = logging.getLogger(__name__)

_UNSET = object()


def serialize_project(project: Project) -> dict[str, object]:
    return ProjectOut.model_validate(project).model_dump(mode="json")


def serialize_project_file(row: ProjectFile) -> dict[str, object]:
    return ProjectFileOut.model_validate(row).model_dump(mode="json")


async def touch_projects(session: AsyncSession, project_ids: Iterable[Optional[int]]) -> None:
    """Bump ``updated_at`` of the given projects inside an open session."""
    ids = {project_id for project_id in project_ids if project_id is not None}
    if not ids:
        return
    await session.execute(update(Project).where(Project.id.in_(ids)).values(updated_at=utcnow()))


async def touch_project(project_id: int) -> None:
    db = await get_db_manager()
    async with db.session() as session:
        await touch_projects(session, [project_id])


async def list_projects() -> list[Project]:
    db = await get_db_manager()
    async with db.session() as session:
        result = await session.execute(select(Project).order_by(Project.updated_at.desc(), Project.id.desc()))
        return list(result.scalars().all())


async def get_project(project_id: int) -> Optional[Project]:
    db = await get_db_manager()
    async with db.session() as session:
        return await session.get(Project, project_id)


async def create_project(name: str, *, instructions: Optional[str] = None) -> Project:
    db = await get_db_manager()
    async with db.session() as session:
        project = Project(name=name, instructions=instructions)
        session.add(project)
        await session.flush()
        await session.refresh(project)
        return project


async def update_project(
    project_id: int,
    *,
    name: object = _UNSET,
    instructions: object = _UNSET,
) -> Optional[Project]:
    db = await get_db_manager()
    async with db.session() as session:
        project = await session.get(Project, project_id)
        if project is None:
            return None
        if name is not _UNSET:
            project.name = name
        if instructions is not _UNSET:
            project.instructions = instructions
        project.updated_at = utcnow()
        await session.flush()
        await session.refresh(project)
        return project


async def delete_project(project_id: int) -> bool:
    """Delete a project and its files; its conversations are kept, unfiled."""
    db = await get_db_manager()
    async with db.session() as session:
        result = await session.execute(delete(Project).where(Project.id == project_id))
        return result.rowcount > 0


async def list_project_files(project_id: int) -> list[ProjectFile]:
    db = await get_db_manager()
    async with db.session() as session:
        result = await session.execute(
            select(ProjectFile)
            .where(ProjectFile.project_id == project_id)
            .order_by(ProjectFile.created_at, ProjectFile.id)
        )
        return list(result.scalars().all())


async def get_project_file(file_id: int) -> Optional[ProjectFile]:
    db = await get_db_manager()
    async with db.session() as session:
        return await session.get(ProjectFile, file_id)


async def create_project_file(project_id: int, attachment: Attachment) -> Optional[ProjectFile]:
    """Store an uploaded file; ``None`` if its type is not supported."""
    fields = stored_fields_for(attachment)
    if fields is None:
        logger.info("Not storing project file %s (%s)", attachment.filename, attachment.mime_type)
        return None
    db = await get_db_manager()
    async with db.session() as session:
        row = ProjectFile(project_id=project_id, **fields)
        session.add(row)
        await touch_projects(session, [project_id])
        await session.flush()
        await session.refresh(row)
        return row


async def delete_project_file(file_id: int) -> bool:
    db = await get_db_manager()
    async with db.session() as session:
        row = await session.get(ProjectFile, file_id)
        if row is None:
            return False
        await session.delete(row)
        await touch_projects(session, [row.project_id])
        return True
