import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ID_PATTERN = r"^[A-Za-z0-9_-]{1,128}$"

# Values applied to editable fields omitted on create (and on PUT)
PROJECT_DEFAULTS: Dict[str, Any] = {
    "description": "",
    "repo_url": "",
    "website_url": "",
    "type": "project",
    "tags": [],
    "status": "active",
    "featured": False,
    "image": "",
}

EDITABLE_FIELDS = ("name",) + tuple(PROJECT_DEFAULTS)


def normalize_tags(value: Any) -> List[str]:
    """
    Accept a list of strings or a comma/whitespace separated string.

    Tags are trimmed, empties dropped and duplicates removed keeping the
    first occurrence.
    """
    if value is None:
        return []
    if isinstance(value, str):
        parts = re.split(r"[,\s]+", value)
    elif isinstance(value, (list, tuple)):
        parts = []
        for item in value:
            if not isinstance(item, str):
                raise ValueError("tags must be strings")
            # commas are the storage delimiter, so they cannot live inside a tag
            parts.extend(item.split(","))
    else:
        raise ValueError("tags must be a list of strings or a delimited string")

    tags: List[str] = []
    for part in parts:
        part = part.strip()
        if part and part not in tags:
            tags.append(part)
    return tags


def join_tags(tags: List[str]) -> str:
    return ",".join(tags)


def split_tags(stored: Optional[str]) -> List[str]:
    if not stored:
        return []
    return [tag.strip() for tag in stored.split(",") if tag.strip()]


def clean_name(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("name must not be blank")
    return value


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProjectCreate(_CamelModel):
    """Body of POST /api/projects (and PUT, where id is ignored)"""

    id: Optional[str] = Field(None, pattern=ID_PATTERN, examples=["my-portfolio"])
    name: str = Field(..., min_length=1, max_length=255, examples=["My Portfolio"])
    description: str = ""
    repo_url: str = Field("", max_length=512)
    website_url: str = Field("", max_length=512)
    type: str = Field("project", max_length=64)
    tags: List[str] = Field(default_factory=list, examples=[["python", "fastapi"]])
    status: str = Field("active", max_length=64)
    featured: bool = False
    image: str = Field("", max_length=512)

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value):
        return normalize_tags(value)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return clean_name(value)


class ProjectUpdate(_CamelModel):
    """Body of PATCH /api/projects/{id}; only the fields sent are changed"""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    repo_url: Optional[str] = Field(None, max_length=512)
    website_url: Optional[str] = Field(None, max_length=512)
    type: Optional[str] = Field(None, max_length=64)
    tags: Optional[List[str]] = None
    status: Optional[str] = Field(None, max_length=64)
    featured: Optional[bool] = None
    image: Optional[str] = Field(None, max_length=512)

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value):
        if value is None:
            return None
        return normalize_tags(value)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: Optional[str]) -> str:
        # only reached when the field is sent, so null here is an explicit null
        if value is None:
            raise ValueError("name cannot be null")
        return clean_name(value)

    def changes(self) -> Dict[str, Any]:
        """Fields present in the request, with explicit nulls reset to defaults."""
        changes = {}
        for field, value in self.model_dump(exclude_unset=True).items():
            if value is None:
                value = PROJECT_DEFAULTS[field]
            changes[field] = value
        return changes


class Project(_CamelModel):
    id: str = Field(..., examples=["3f1c2e5a-8d4b-4c57-9a1e-2b7f0c9d6e11"])
    name: str
    description: str = ""
    repo_url: str = ""
    website_url: str = ""
    type: str = "project"
    tags: List[str] = Field(default_factory=list)
    status: str = "active"
    featured: bool = False
    image: str = ""
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)
