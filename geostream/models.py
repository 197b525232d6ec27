from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class FetchRunStat(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    product: str = Field(index=True, unique=True)
    run_count: int = 0
    request_count: int = 0
    failure_count: int = Field(default=0, description="Tiles still failing after all retry rounds")
    last_used_at: Optional[datetime] = None
