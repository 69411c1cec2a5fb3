"""Item models produced by the upstream fetchers and served to the display."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TaskStatus(str, Enum):
    NEEDS_ACTION = "needsAction"
    COMPLETED = "completed"


class Event(BaseModel):
    """One calendar event. Times are ISO 8601 strings in the configured timezone."""

    id: str
    title: str = "Untitled Event"
    start: str
    end: Optional[str] = None
    all_day: Optional[bool] = Field(default=None, alias="allDay")
    location: Optional[str] = None
    source_url: Optional[str] = Field(default=None, alias="sourceUrl")

    model_config = ConfigDict(populate_by_name=True)


class Task(BaseModel):
    """One task from the default task list."""

    id: str
    list_id: str = Field(..., alias="listId")
    title: str
    notes: Optional[str] = None
    due: Optional[str] = None
    status: TaskStatus = TaskStatus.NEEDS_ACTION
    completed_at: Optional[str] = Field(default=None, alias="completedAt")
    updated: str

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)
