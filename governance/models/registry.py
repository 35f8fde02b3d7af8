"""Model registry models."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from governance.models.metrics import MetricsSnapshot


class ModelType(str, Enum):
    """Kind of registered model or configuration."""

    EMBEDDING = "embedding"
    CHUNKING = "chunking"
    SUMMARIZATION = "summarization"
    GENERATION = "generation"


class ModelRegistryEntry(BaseModel):
    """A registered model/config version and its declared rollout."""

    model_config = ConfigDict(protected_namespaces=())

    id: UUID
    project_id: UUID
    model_type: ModelType
    model_name: str
    model_version: str
    is_active: bool = False
    is_baseline: bool = False
    config: dict[str, Any] = Field(default_factory=dict)
    performance_metrics: Optional[MetricsSnapshot] = None
    deployment_percentage: int = Field(default=0, ge=0, le=100)
    deployed_at: Optional[datetime] = None
    deprecated_at: Optional[datetime] = None
    created_at: datetime
    created_by: Optional[str] = None
