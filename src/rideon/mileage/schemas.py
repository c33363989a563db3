"""Request/response schemas for mileage endpoints."""

from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, Field


class MileLogRequest(BaseModel):
    """Log one ride. ``date`` defaults to today."""

    miles: float = Field(..., gt=0)
    date: dt.date | None = None
    notes: str = Field("", max_length=1000)


class MileLogResponse(BaseModel):
    entry_id: str
    week_id: str
    miles: float
    aggregate_failures: list[str]
