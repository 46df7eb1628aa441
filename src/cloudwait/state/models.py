"""State file data models."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from cloudwait.provisioners.base import Resource as ProvisionedResource


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Resource(BaseModel):
    """A provisioned AWS resource as recorded locally."""

    id: str = Field(..., description="Logical resource ID")
    type: str = Field(..., description="AWS resource type (e.g., AWS::Athena::Database)")
    physical_id: Optional[str] = Field(None, description="Physical AWS resource ID")
    properties: Dict[str, Any] = Field(
        default_factory=dict, description="Resource properties as last read from AWS"
    )
    dependencies: List[str] = Field(
        default_factory=list, description="List of resource IDs this resource depends on"
    )
    tags: Dict[str, str] = Field(default_factory=dict, description="Resource tags")
    metadata: Dict[str, Any] = Field(
        default_factory=dict, description="Additional metadata (update time, etc.)"
    )

    @classmethod
    def from_provisioned(cls, resource: ProvisionedResource) -> "Resource":
        """Record a resource returned by a provisioner."""
        return cls(
            id=resource.id,
            type=resource.type,
            physical_id=resource.physical_id,
            properties=resource.properties,
            dependencies=resource.dependencies,
            tags=resource.tags,
            metadata={"updated_at": _utcnow().isoformat()},
        )

    def to_provisioned(self) -> ProvisionedResource:
        """Convert back to the structure provisioners work with."""
        return ProvisionedResource(
            id=self.id,
            type=self.type,
            physical_id=self.physical_id,
            properties=dict(self.properties),
            dependencies=list(self.dependencies),
            tags=dict(self.tags),
        )


class State(BaseModel):
    """The complete local state of a project."""

    version: str = Field("1.0", description="State file format version")
    project_name: str = Field(..., description="Project name")
    region: str = Field(..., description="AWS region")
    timestamp: datetime = Field(default_factory=_utcnow, description="Last update timestamp")
    resources: Dict[str, Resource] = Field(
        default_factory=dict, description="Resources keyed by logical ID"
    )

    def put_resource(self, resource: Resource) -> None:
        """Add or replace a resource."""
        self.resources[resource.id] = resource
        self.timestamp = _utcnow()

    def remove_resource(self, resource_id: str) -> Optional[Resource]:
        """Remove a resource and return it."""
        resource = self.resources.pop(resource_id, None)
        if resource is not None:
            self.timestamp = _utcnow()
        return resource

    def get_resource(self, resource_id: str) -> Optional[Resource]:
        return self.resources.get(resource_id)

    def list_resources(self) -> List[Resource]:
        return list(self.resources.values())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "State":
        """Create State from dictionary."""
        return cls.model_validate(data)
