"""
Project persistence layer.

Two interchangeable backends implement ``ProjectStore``: a JSON document on
disk (the default) and a SQLAlchemy table used when a database URL is
configured. Tags are kept as one comma-delimited string in both backends and
exploded back to a list on read.
"""

import json
import logging
import os
import tempfile
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from src.api.exceptions import ProjectConflictError, ProjectNotFoundError, StorageError
from src.api.models import ProjectModel
from src.api.schemas.project import (
    PROJECT_DEFAULTS,
    Project,
    ProjectCreate,
    join_tags,
    split_tags,
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def sort_recent_first(projects: List[Project]) -> List[Project]:
    return sorted(projects, key=lambda p: (p.updated_at, p.created_at), reverse=True)


class ProjectStore(ABC):
    """Storage contract shared by the file and database backends."""

    def __init__(self) -> None:
        self._last_tick: Optional[datetime] = None

    def _tick(self, after: Optional[datetime] = None) -> datetime:
        """Current time, strictly later than any timestamp handed out before."""
        now = utcnow()
        for floor in (self._last_tick, after):
            if floor is not None and now <= floor:
                now = floor + timedelta(microseconds=1)
        self._last_tick = now
        return now

    def _new_project(self, payload: ProjectCreate) -> Project:
        now = self._tick()
        fields = payload.model_dump(exclude={"id"})
        return Project(id=payload.id or str(uuid.uuid4()), created_at=now, updated_at=now, **fields)

    def _apply_changes(self, current: Project, changes: Dict[str, Any], replace: bool) -> Project:
        fields = current.model_dump()
        if replace:
            fields.update(PROJECT_DEFAULTS)
        changes = {k: v for k, v in changes.items() if k not in ("id", "created_at", "updated_at")}
        fields.update(changes)
        fields["updated_at"] = self._tick(after=current.updated_at)
        return Project(**fields)

    @abstractmethod
    def list(self) -> List[Project]:
        """All projects, most recently updated first. Read failures yield []."""

    @abstractmethod
    def get(self, project_id: str) -> Project:
        """Raises ProjectNotFoundError."""

    @abstractmethod
    def create(self, payload: ProjectCreate) -> Project:
        pass

    @abstractmethod
    def update(self, project_id: str, changes: Dict[str, Any], replace: bool = False) -> Project:
        """
        Apply ``changes`` to an existing project.

        With ``replace=True`` every editable field not in ``changes`` is reset
        to its default (PUT semantics). ``id`` and ``createdAt`` never change
        and ``updatedAt`` always moves forward.
        """

    @abstractmethod
    def delete(self, project_id: str) -> None:
        pass


class JsonProjectStore(ProjectStore):
    """Whole-document JSON storage; every mutation rewrites the file."""

    def __init__(self, path: str) -> None:
        super().__init__()
        self.path = path

    def _read_records(self) -> List[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            document = json.load(f)
        records = document.get("projects", []) if isinstance(document, dict) else document
        if not isinstance(records, list):
            raise ValueError(f"{self.path} does not contain a project list")
        return records

    @staticmethod
    def _from_record(record: Dict[str, Any]) -> Project:
        data = dict(record)
        if isinstance(data.get("tags"), str):
            data["tags"] = split_tags(data["tags"])
        return Project.model_validate(data)

    @staticmethod
    def _to_record(project: Project) -> Dict[str, Any]:
        record = project.model_dump(by_alias=True, mode="json")
        record["tags"] = join_tags(project.tags)
        return record

    def _load(self) -> List[Project]:
        return [self._from_record(r) for r in self._read_records()]

    def _load_for_write(self) -> List[Project]:
        try:
            return self._load()
        except (OSError, ValueError) as e:
            raise StorageError(detail=f"Could not read {self.path}: {e}") from e

    def _save(self, projects: List[Project]) -> None:
        document = {"projects": [self._to_record(p) for p in sort_recent_first(projects)]}
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".projects-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)
            logger.error(f"Failed to write {self.path}: {e}")
            raise StorageError(detail=f"Could not write {self.path}: {e}") from e

    def list(self) -> List[Project]:
        try:
            projects = self._load()
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read {self.path}, returning no projects: {e}")
            return []
        return sort_recent_first(projects)

    def get(self, project_id: str) -> Project:
        for project in self.list():
            if project.id == project_id:
                return project
        raise ProjectNotFoundError()

    def create(self, payload: ProjectCreate) -> Project:
        projects = self._load_for_write()
        if payload.id and any(p.id == payload.id for p in projects):
            raise ProjectConflictError()
        project = self._new_project(payload)
        projects.append(project)
        self._save(projects)
        logger.info(f"Created project {project.id}")
        return project

    def update(self, project_id: str, changes: Dict[str, Any], replace: bool = False) -> Project:
        projects = self._load_for_write()
        for index, current in enumerate(projects):
            if current.id == project_id:
                updated = self._apply_changes(current, changes, replace)
                projects[index] = updated
                self._save(projects)
                logger.info(f"Updated project {project_id}")
                return updated
        raise ProjectNotFoundError()

    def delete(self, project_id: str) -> None:
        projects = self._load_for_write()
        remaining = [p for p in projects if p.id != project_id]
        if len(remaining) == len(projects):
            raise ProjectNotFoundError()
        self._save(remaining)
        logger.info(f"Deleted project {project_id}")


class SqlProjectStore(ProjectStore):
    """Projects table accessed through a SQLAlchemy session factory."""

    def __init__(self, session_factory) -> None:
        super().__init__()
        self.session_factory = session_factory

    @staticmethod
    def _to_project(row: ProjectModel) -> Project:
        return Project(
            id=row.id,
            name=row.name,
            description=row.description or "",
            repo_url=row.repo_url or "",
            website_url=row.website_url or "",
            type=row.type or PROJECT_DEFAULTS["type"],
            tags=split_tags(row.tags),
            status=row.status or PROJECT_DEFAULTS["status"],
            featured=bool(row.featured),
            image=row.image or "",
            created_at=_as_utc(row.created_at),
            updated_at=_as_utc(row.updated_at),
        )

    @staticmethod
    def _copy_to_row(project: Project, row: ProjectModel) -> None:
        row.name = project.name
        row.description = project.description
        row.repo_url = project.repo_url
        row.website_url = project.website_url
        row.type = project.type
        row.tags = join_tags(project.tags)
        row.status = project.status
        row.featured = project.featured
        row.image = project.image
        # naive UTC; the tz is reattached on read
        row.created_at = project.created_at.replace(tzinfo=None)
        row.updated_at = project.updated_at.replace(tzinfo=None)

    def _commit(self, db) -> None:
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise ProjectConflictError() from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database write failed: {e}")
            raise StorageError(detail=str(e)) from e

    def list(self) -> List[Project]:
        try:
            with self.session_factory() as db:
                rows = (
                    db.query(ProjectModel)
                    .order_by(desc(ProjectModel.updated_at), desc(ProjectModel.created_at))
                    .all()
                )
                return [self._to_project(row) for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"Failed to list projects, returning none: {e}")
            return []

    def get(self, project_id: str) -> Project:
        with self.session_factory() as db:
            row = db.get(ProjectModel, project_id)
            if row is None:
                raise ProjectNotFoundError()
            return self._to_project(row)

    def create(self, payload: ProjectCreate) -> Project:
        project = self._new_project(payload)
        with self.session_factory() as db:
            if payload.id and db.get(ProjectModel, payload.id) is not None:
                raise ProjectConflictError()
            row = ProjectModel(id=project.id)
            self._copy_to_row(project, row)
            db.add(row)
            self._commit(db)
        logger.info(f"Created project {project.id}")
        return project

    def update(self, project_id: str, changes: Dict[str, Any], replace: bool = False) -> Project:
        with self.session_factory() as db:
            row = db.get(ProjectModel, project_id)
            if row is None:
                raise ProjectNotFoundError()
            updated = self._apply_changes(self._to_project(row), changes, replace)
            self._copy_to_row(updated, row)
            self._commit(db)
        logger.info(f"Updated project {project_id}")
        return updated

    def delete(self, project_id: str) -> None:
        with self.session_factory() as db:
            row = db.get(ProjectModel, project_id)
            if row is None:
                raise ProjectNotFoundError()
            db.delete(row)
            self._commit(db)
        logger.info(f"Deleted project {project_id}")
