from typing import Optional

from pydantic import BaseModel, Field


class ViewBeacon(BaseModel):
    """Body of POST /api/metrics/view; an empty body counts a view of ``/``"""

    page: Optional[str] = Field(None, max_length=2048, examples=["/projects"])
