"""Pydantic models for configuration schema."""

from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

SUPPORTED_RESOURCE_TYPES = ("AWS::Route53::HealthCheck", "AWS::Athena::Database")


def _validate_tags(v: Dict[str, str]) -> Dict[str, str]:
    for key, value in v.items():
        if not key or not isinstance(key, str):
            raise ValueError(f"Tag key must be a non-empty string: {key}")
        if not isinstance(value, str):
            raise ValueError(f"Tag value must be a string for key '{key}': {value}")
        if len(key) > 128:
            raise ValueError(f"Tag key exceeds 128 characters: {key}")
        if len(value) > 256:
            raise ValueError(f"Tag value exceeds 256 characters for key '{key}'")
        if key.startswith("aws:"):
            raise ValueError(f"Tag keys starting with 'aws:' are reserved: {key}")
    return v


class ProjectConfig(BaseModel):
    """Project-level configuration."""

    name: str = Field(..., min_length=1, max_length=64, pattern="^[a-z0-9-]+$")
    region: str = Field(..., pattern=r"^[a-z]{2}(-[a-z]+)+-\d$")
    tags: Dict[str, str] = Field(default_factory=dict)

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Validate tag keys and values."""
        return _validate_tags(v)


class PollingConfig(BaseModel):
    """Timing used while waiting on Athena queries, in seconds."""

    timeout: float = Field(600.0, gt=0)
    initial_delay: float = Field(3.0, ge=0)
    poll_interval: float = Field(3.0, gt=0)
    backoff_factor: float = Field(1.0, ge=1.0)
    max_interval: Optional[float] = Field(None, gt=0)

    @model_validator(mode="after")
    def validate_intervals(self):
        if self.max_interval is not None and self.max_interval < self.poll_interval:
            raise ValueError("max_interval must not be smaller than poll_interval")
        return self


class ResourceConfig(BaseModel):
    """A single declared resource."""

    id: str = Field(..., min_length=1, max_length=128, pattern="^[A-Za-z0-9_-]+$")
    type: Literal["AWS::Route53::HealthCheck", "AWS::Athena::Database"]
    properties: Dict[str, Any] = Field(default_factory=dict)
    depends_on: List[str] = Field(default_factory=list)
    tags: Dict[str, str] = Field(default_factory=dict)

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: Dict[str, str]) -> Dict[str, str]:
        return _validate_tags(v)
