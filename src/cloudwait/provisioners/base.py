"""Base provisioner interface and abstract classes."""

from abc import ABC, abstractmethod
from typing import Any, Dict, FrozenSet, List, Optional, Type
from dataclasses import dataclass, field
from enum import Enum

import boto3
from botocore.config import Config
from pydantic import BaseModel


class ChangeType(Enum):
    """Type of change for a resource."""
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    NO_CHANGE = "no_change"


@dataclass
class Resource:
    """Represents an AWS resource."""
    id: str
    type: str
    physical_id: Optional[str]
    properties: Dict[str, Any]
    dependencies: List[str] = field(default_factory=list)
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class ProvisionPlan:
    """Plan for provisioning a resource."""
    resource: Resource
    change_type: ChangeType
    current_state: Optional[Resource]
    changed_properties: List[str] = field(default_factory=list)
    tags_changed: bool = False


class BaseProvisioner(ABC):
    """Base class for all resource provisioners.

    Subclasses declare their property model and which properties force a
    replacement; planning is shared.
    """

    resource_type: str = ""
    properties_model: Type[BaseModel]
    # Changing one of these destroys and recreates the resource
    force_new_properties: FrozenSet[str] = frozenset()

    def __init__(self, boto_session: boto3.Session, client_config: Optional[Config] = None):
        """Initialize provisioner with boto3 session.

        Args:
            boto_session: Configured boto3 session for AWS API calls
            client_config: botocore client config (retries, timeouts) for every client
        """
        self.session = boto_session
        self.client_config = client_config

    def client(self, service_name: str):
        """Create a client for a service with the provisioner's client config."""
        return self.session.client(service_name, config=self.client_config)

    def validate_properties(self, properties: Dict[str, Any]) -> Dict[str, Any]:
        """Validate and normalize user supplied properties.

        Raises:
            pydantic.ValidationError: If a property is invalid
        """
        model = self.properties_model.model_validate(properties)
        return model.model_dump(exclude_none=True)

    def plan(self, desired: Resource, current: Optional[Resource]) -> ProvisionPlan:
        """Determine what changes are needed for the resource.

        Args:
            desired: The desired state of the resource
            current: The current state of the resource (None if doesn't exist)

        Returns:
            ProvisionPlan describing the changes needed
        """
        if current is None:
            return ProvisionPlan(resource=desired, change_type=ChangeType.CREATE, current_state=None)

        changed = [
            name for name, value in desired.properties.items()
            if not self.values_equal(name, value, current.properties.get(name))
        ]
        tags_changed = desired.tags != current.tags

        if any(name in self.force_new_properties for name in changed):
            change_type = ChangeType.REPLACE
        elif changed or tags_changed:
            change_type = ChangeType.UPDATE
        else:
            change_type = ChangeType.NO_CHANGE

        return ProvisionPlan(
            resource=desired,
            change_type=change_type,
            current_state=current,
            changed_properties=changed,
            tags_changed=tags_changed,
        )

    def values_equal(self, name: str, desired: Any, current: Any) -> bool:
        """Compare a desired property value with the current one."""
        return desired == current

    def provision(self, plan: ProvisionPlan) -> Resource:
        """Execute the provisioning plan.

        Args:
            plan: The provisioning plan to execute

        Returns:
            Resource with updated physical_id and properties
        """
        if plan.change_type == ChangeType.CREATE:
            return self.create(plan.resource)
        if plan.change_type == ChangeType.REPLACE:
            self.destroy(plan.current_state)
            plan.resource.physical_id = None
            return self.create(plan.resource)
        if plan.change_type == ChangeType.UPDATE:
            plan.resource.physical_id = plan.current_state.physical_id
            return self.update(plan)
        return plan.current_state or plan.resource

    @abstractmethod
    def create(self, resource: Resource) -> Resource:
        """Create the resource and return it as read back from AWS."""
        pass

    @abstractmethod
    def update(self, plan: ProvisionPlan) -> Resource:
        """Apply in-place changes and return the resource as read back from AWS."""
        pass

    @abstractmethod
    def destroy(self, resource: Resource) -> None:
        """Destroy the resource.

        Args:
            resource: The resource to destroy
        """
        pass

    @abstractmethod
    def get_current_state(self, resource: Resource) -> Optional[Resource]:
        """Fetch current resource state from AWS.

        Args:
            resource: Resource carrying its logical ID and, once created, its physical ID

        Returns:
            Current resource state or None if it doesn't exist
        """
        pass
