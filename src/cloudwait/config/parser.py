"""YAML configuration parser."""

from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import ValidationError

from cloudwait.poller import PollSpec
from cloudwait.provisioners import PROVISIONER_TYPES, Resource, query_poll_spec

from .models import PollingConfig, ProjectConfig, ResourceConfig


class ConfigValidationError(Exception):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, errors: Optional[List[Dict]] = None):
        self.message = message
        self.errors = errors or []
        super().__init__(self.message)

    def __str__(self) -> str:
        """Format validation errors for display."""
        if not self.errors:
            return self.message

        error_lines = [self.message, ""]
        for error in self.errors:
            location = " -> ".join(str(loc) for loc in error.get("loc", []))
            msg = error.get("msg", "Unknown error")
            error_lines.append(f"  - {location}: {msg}")

        return "\n".join(error_lines)


def _collect(errors: List[Dict], prefix: List, exc: ValidationError) -> None:
    for error in exc.errors():
        errors.append({"loc": prefix + list(error["loc"]), "msg": error["msg"]})


class Config:
    """Configuration manager for cloudwait.yaml."""

    def __init__(self, config_path: str):
        """Initialize configuration manager.

        Args:
            config_path: Path to cloudwait.yaml configuration file
        """
        self.config_path = Path(config_path)
        self.data: Dict = {}
        self.project: Optional[ProjectConfig] = None
        self.polling: PollingConfig = PollingConfig()
        self.resources: List[ResourceConfig] = []

    def load(self) -> "Config":
        """Load and validate configuration from YAML file.

        Returns:
            Self for method chaining

        Raises:
            ConfigValidationError: If configuration is invalid
            FileNotFoundError: If configuration file doesn't exist
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, "r") as f:
                self.data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Failed to parse YAML: {e}")

        if not isinstance(self.data, dict):
            raise ConfigValidationError("Configuration must be a mapping at the top level")

        validation_errors = self.validate()
        if validation_errors:
            raise ConfigValidationError(
                f"Configuration validation failed with {len(validation_errors)} error(s)",
                validation_errors,
            )

        self.project = ProjectConfig(**self.data["project"])
        self.polling = PollingConfig(**(self.data.get("polling") or {}))
        self.resources = [self._parse_resource(r) for r in self.data["resources"]]

        return self

    def validate(self) -> List[Dict]:
        """Validate configuration against schema.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: List[Dict] = []

        project = self.data.get("project")
        if project is None:
            errors.append({"loc": ["project"], "msg": "Required field 'project' is missing"})
        elif not isinstance(project, dict):
            errors.append({"loc": ["project"], "msg": "project must be a mapping"})
        else:
            try:
                ProjectConfig(**project)
            except ValidationError as e:
                _collect(errors, ["project"], e)

        polling = self.data.get("polling") or {}
        if not isinstance(polling, dict):
            errors.append({"loc": ["polling"], "msg": "polling must be a mapping"})
        else:
            try:
                PollingConfig(**polling)
            except ValidationError as e:
                _collect(errors, ["polling"], e)

        resources = self.data.get("resources")
        if not isinstance(resources, list) or not resources:
            errors.append({"loc": ["resources"], "msg": "At least one resource must be defined"})
            return errors

        seen = set()
        dependencies = []
        for idx, resource_data in enumerate(resources):
            try:
                resource = ResourceConfig(**resource_data)
            except ValidationError as e:
                _collect(errors, ["resources", idx], e)
                continue
            except TypeError:
                errors.append({"loc": ["resources", idx], "msg": "Resource must be a mapping"})
                continue

            if resource.id in seen:
                errors.append({"loc": ["resources", idx, "id"], "msg": f"Duplicate resource id '{resource.id}'"})
            seen.add(resource.id)
            dependencies.extend((idx, dependency) for dependency in resource.depends_on)

            model = PROVISIONER_TYPES[resource.type].properties_model
            try:
                model.model_validate(resource.properties)
            except ValidationError as e:
                _collect(errors, ["resources", idx, "properties"], e)

        for idx, dependency in dependencies:
            if dependency not in seen:
                errors.append({
                    "loc": ["resources", idx, "depends_on"],
                    "msg": f"Unknown resource '{dependency}'",
                })

        return errors

    def _parse_resource(self, resource_data: Dict) -> ResourceConfig:
        resource = ResourceConfig(**resource_data)
        model = PROVISIONER_TYPES[resource.type].properties_model
        resource.properties = model.model_validate(resource.properties).model_dump(exclude_none=True)
        return resource

    def get_resource(self, resource_id: str) -> Optional[ResourceConfig]:
        """Get a declared resource by ID."""
        for resource in self.resources:
            if resource.id == resource_id:
                return resource
        return None

    def desired_resources(self, resource_filter: Optional[str] = None) -> List[Resource]:
        """Build desired-state resources in declaration order.

        Project tags are inherited; resource tags override them.

        Args:
            resource_filter: Optional resource ID to restrict to
        """
        desired = []
        for resource in self.resources:
            if resource_filter and resource.id != resource_filter:
                continue
            tags = {**self.project.tags, **resource.tags}
            desired.append(Resource(
                id=resource.id,
                type=resource.type,
                physical_id=None,
                properties=dict(resource.properties),
                dependencies=list(resource.depends_on),
                tags=tags,
            ))
        return desired

    def poll_spec(self) -> PollSpec:
        """Poll spec for Athena queries built from the polling section."""
        return query_poll_spec(**self.polling.model_dump())

    def to_dict(self) -> Dict:
        """Convert configuration to dictionary."""
        return {
            "project": self.project.model_dump() if self.project else {},
            "polling": self.polling.model_dump(),
            "resources": [resource.model_dump() for resource in self.resources],
        }
