"""Orchestrator that reconciles declared resources with AWS and local state."""

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from cloudwait.config.parser import Config
from cloudwait.provisioners.base import BaseProvisioner, ChangeType, ProvisionPlan, Resource
from cloudwait.state.manager import StateManager
from cloudwait.state.models import Resource as StateResource
from cloudwait.utils.errors import (
    DeploymentError,
    ErrorContext,
    ValidationError,
    error_handler,
)
from cloudwait.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


class ExecutionStatus(Enum):
    """Status of a resource operation."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ResourceExecutionResult:
    """Result of executing a single resource."""

    resource_id: str
    status: ExecutionStatus
    change_type: Optional[ChangeType] = None
    resource: Optional[Resource] = None
    error: Optional[DeploymentError] = None
    duration: float = 0.0  # seconds

    def is_success(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS


@dataclass
class ExecutionResult:
    """Outcome of an apply or destroy run."""

    results: List[ResourceExecutionResult] = field(default_factory=list)
    duration: float = 0.0  # seconds

    @property
    def failed(self) -> List[ResourceExecutionResult]:
        return [r for r in self.results if r.status == ExecutionStatus.FAILED]

    def is_success(self) -> bool:
        return not self.failed


# Type alias for progress callback: resource ID, status, optional detail
ProgressCallback = Callable[[str, ExecutionStatus, Optional[str]], None]


def dependency_order(resources: List[Resource]) -> List[Resource]:
    """Order resources so that dependencies come first, keeping declaration order otherwise.

    Raises:
        ValidationError: If the dependencies contain a cycle
    """
    by_id = {r.id: r for r in resources}
    ordered: List[Resource] = []
    visiting = set()
    done = set()

    def visit(resource: Resource, path: List[str]):
        if resource.id in done:
            return
        if resource.id in visiting:
            raise ValidationError(f"Circular dependency: {' -> '.join(path + [resource.id])}")
        visiting.add(resource.id)
        for dependency in resource.dependencies:
            if dependency in by_id:
                visit(by_id[dependency], path + [resource.id])
        visiting.discard(resource.id)
        done.add(resource.id)
        ordered.append(resource)

    for resource in resources:
        visit(resource, [])
    return ordered


class ResourceOrchestrator:
    """Coordinates planning, provisioning, refresh and destruction."""

    def __init__(
        self,
        config: Config,
        state_manager: StateManager,
        provisioners: Dict[str, BaseProvisioner],
        max_workers: int = 4
    ):
        """Initialize orchestrator.

        Args:
            config: Loaded configuration
            state_manager: State manager with state loaded
            provisioners: Provisioners keyed by resource type
            max_workers: Parallel workers used when refreshing
        """
        self.config = config
        self.state_manager = state_manager
        self.provisioners = provisioners
        self.max_workers = max_workers

    def _provisioner(self, resource_type: str) -> BaseProvisioner:
        if resource_type not in self.provisioners:
            raise ValidationError(f"No provisioner registered for {resource_type}")
        return self.provisioners[resource_type]

    def current_state(self, desired: Resource) -> Optional[Resource]:
        """Read the remote state of a declared resource.

        The recorded resource is used as the starting point when there is one,
        so physical IDs and previously applied properties are known.
        """
        recorded = self.state_manager.get_resource(desired.id)
        base = recorded.to_provisioned() if recorded else desired
        return self._provisioner(desired.type).get_current_state(base)

    def plan(self, resource_filter: Optional[str] = None) -> List[ProvisionPlan]:
        """Compute the change needed for every declared resource."""
        plans = []
        for desired in dependency_order(self.config.desired_resources(resource_filter)):
            provisioner = self._provisioner(desired.type)
            plans.append(provisioner.plan(desired, self.current_state(desired)))
        return plans

    def apply(
        self,
        resource_filter: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None
    ) -> ExecutionResult:
        """Provision declared resources in dependency order.

        Stops at the first failure; resources depending on it are skipped.
        State is saved after every successful resource.
        """
        start = time.monotonic()
        result = ExecutionResult()
        failed = False

        for plan in self.plan(resource_filter):
            resource_id = plan.resource.id
            if failed:
                result.results.append(ResourceExecutionResult(resource_id, ExecutionStatus.SKIPPED))
                self._notify(progress_callback, resource_id, ExecutionStatus.SKIPPED, None)
                continue

            outcome = self._execute(plan, progress_callback)
            result.results.append(outcome)
            if outcome.is_success():
                self.state_manager.put_resource(StateResource.from_provisioned(outcome.resource))
                self.state_manager.save()
            else:
                failed = True

        result.duration = time.monotonic() - start
        return result

    def _execute(self, plan: ProvisionPlan, progress_callback: Optional[ProgressCallback]) -> ResourceExecutionResult:
        resource = plan.resource
        start = time.monotonic()
        self._notify(progress_callback, resource.id, ExecutionStatus.IN_PROGRESS, plan.change_type.value)

        with LogContext(logger, resource_id=resource.id, resource_type=resource.type,
                        operation=plan.change_type.value):
            try:
                provisioned = self._provisioner(resource.type).provision(plan)
            except Exception as e:
                error = self._wrap(e, resource, plan.change_type.value)
                error_handler.log_error(error)
                self._notify(progress_callback, resource.id, ExecutionStatus.FAILED, error.message)
                return ResourceExecutionResult(
                    resource.id, ExecutionStatus.FAILED, plan.change_type,
                    error=error, duration=time.monotonic() - start,
                )

            duration = time.monotonic() - start
            logger.info(f"{plan.change_type.value} complete in {duration:.1f}s",
                        extra={'duration': duration})

        self._notify(progress_callback, resource.id, ExecutionStatus.SUCCESS, plan.change_type.value)
        return ResourceExecutionResult(
            resource.id, ExecutionStatus.SUCCESS, plan.change_type,
            resource=provisioned, duration=duration,
        )

    def refresh(self) -> Dict[str, bool]:
        """Re-read every recorded resource from AWS into state.

        Resources are read in parallel; each read owns its own poll session.
        Resources that no longer exist are dropped from state.

        Returns:
            Mapping of resource ID to whether it still exists
        """
        recorded = self.state_manager.get_state().list_resources()

        def read(resource: StateResource):
            provisioner = self._provisioner(resource.type)
            return resource, provisioner.get_current_state(resource.to_provisioned())

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            outcomes = list(pool.map(read, recorded))

        exists = {}
        for resource, current in outcomes:
            if current is None:
                logger.warning(f"{resource.type} {resource.id} no longer exists, removing from state")
                self.state_manager.remove_resource(resource.id)
                exists[resource.id] = False
            else:
                self.state_manager.put_resource(StateResource.from_provisioned(current))
                exists[resource.id] = True

        self.state_manager.save()
        return exists

    def destroy(
        self,
        resource_filter: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None
    ) -> ExecutionResult:
        """Destroy recorded resources, dependents first."""
        start = time.monotonic()
        result = ExecutionResult()
        recorded = [
            r.to_provisioned() for r in self.state_manager.get_state().list_resources()
            if not resource_filter or r.id == resource_filter
        ]

        for resource in reversed(dependency_order(recorded)):
            self._notify(progress_callback, resource.id, ExecutionStatus.IN_PROGRESS, ChangeType.DELETE.value)
            resource_start = time.monotonic()
            try:
                self._provisioner(resource.type).destroy(resource)
            except Exception as e:
                error = self._wrap(e, resource, ChangeType.DELETE.value)
                error_handler.log_error(error)
                result.results.append(ResourceExecutionResult(
                    resource.id, ExecutionStatus.FAILED, ChangeType.DELETE, error=error,
                    duration=time.monotonic() - resource_start,
                ))
                self._notify(progress_callback, resource.id, ExecutionStatus.FAILED, error.message)
                continue

            self.state_manager.remove_resource(resource.id)
            self.state_manager.save()
            result.results.append(ResourceExecutionResult(
                resource.id, ExecutionStatus.SUCCESS, ChangeType.DELETE,
                duration=time.monotonic() - resource_start,
            ))
            self._notify(progress_callback, resource.id, ExecutionStatus.SUCCESS, ChangeType.DELETE.value)

        result.duration = time.monotonic() - start
        return result

    def import_resource(self, resource_id: str, physical_id: str) -> Resource:
        """Adopt an existing AWS resource as the declared resource `resource_id`.

        Raises:
            ValidationError: If the resource is not declared or does not exist
        """
        declared = self.config.desired_resources(resource_id)
        if not declared:
            raise ValidationError(f"Resource '{resource_id}' is not declared in {self.config.config_path}")

        base = declared[0]
        base.physical_id = physical_id
        current = self._provisioner(base.type).get_current_state(base)
        if current is None:
            raise ValidationError(f"{base.type} {physical_id} does not exist")

        self.state_manager.put_resource(StateResource.from_provisioned(current))
        self.state_manager.save()
        logger.info(f"Imported {base.type} {physical_id} as {resource_id}")
        return current

    def _wrap(self, error: Exception, resource: Resource, operation: str) -> DeploymentError:
        context = ErrorContext(resource_id=resource.id, resource_type=resource.type, operation=operation)
        wrapped = error_handler.handle_exception(error, context)
        if wrapped.context.resource_id is None:
            wrapped.context.resource_id = resource.id
            wrapped.context.resource_type = resource.type
            wrapped.context.operation = operation
        return wrapped

    @staticmethod
    def _notify(callback: Optional[ProgressCallback], resource_id: str,
                status: ExecutionStatus, detail: Optional[str]) -> None:
        if callback is not None:
            callback(resource_id, status, detail)
