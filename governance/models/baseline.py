"""Quality baseline models."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from governance.models.metrics import MetricsSnapshot


class BaselineType(str, Enum):
    """Category of AI behavior a baseline covers."""

    RETRIEVAL = "retrieval"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    SUMMARIZATION = "summarization"
    OVERALL = "overall"


class QualityBaseline(BaseModel):
    """Accepted reference snapshot for one baseline type in a project."""

    id: UUID
    project_id: UUID
    baseline_type: BaselineType
    metrics: MetricsSnapshot
    sample_size: int = 0
    config: dict[str, Any] = Field(default_factory=dict)  # model configuration that produced the metrics
    is_current: bool = True
    established_at: datetime
    established_by: Optional[str] = None
    superseded_at: Optional[datetime] = None
    superseded_by: Optional[UUID] = None
