"""Athena database provisioner."""

from typing import Literal, Optional

from pydantic import BaseModel, Field

from cloudwait.poller import CancellationToken, PollSpec
from cloudwait.utils.errors import DeploymentError, ErrorContext, ProvisioningError
from cloudwait.utils.logging import get_logger

from .athena import (
    DEFAULT_QUERY_POLL_SPEC,
    AthenaQueryRunner,
    build_result_configuration,
    flatten_result_set,
    result_set_values,
)
from .base import BaseProvisioner, ProvisionPlan, Resource

logger = get_logger(__name__)

RESOURCE_TYPE = 'AWS::Athena::Database'


class EncryptionConfiguration(BaseModel):
    """Encryption of query results written to the bucket."""

    encryption_option: Literal["SSE_S3", "SSE_KMS", "CSE_KMS"]
    kms_key: Optional[str] = None


class AthenaDatabaseProperties(BaseModel):
    """Desired state of an Athena database."""

    name: str = Field(
        ..., pattern="^[_a-z0-9]+$",
        description="Lowercase letters, numbers, or underscore",
    )
    bucket: str = Field(..., min_length=1, description="S3 bucket for query results")
    force_destroy: bool = False
    encryption_configuration: Optional[EncryptionConfiguration] = None


class AthenaDatabaseProvisioner(BaseProvisioner):
    """Provisioner for Athena databases, managed through DDL queries."""

    resource_type = RESOURCE_TYPE
    properties_model = AthenaDatabaseProperties
    force_new_properties = frozenset({'name', 'bucket'})

    def __init__(
        self,
        boto_session,
        poll_spec: PollSpec = DEFAULT_QUERY_POLL_SPEC,
        cancel: Optional[CancellationToken] = None,
        client_config=None,
    ):
        """Initialize Athena database provisioner.

        Args:
            boto_session: Configured boto3 session
            poll_spec: Timing used while waiting on DDL queries
            cancel: Optional token aborting any in-flight query wait
            client_config: botocore client config for the Athena client
        """
        super().__init__(boto_session, client_config)
        self.athena_client = self.client('athena')
        self.runner = AthenaQueryRunner(self.athena_client, poll_spec)
        self.cancel = cancel

    def create(self, resource: Resource) -> Resource:
        """Create the database and confirm it is listed."""
        name = resource.properties['name']
        logger.info(f"Creating Athena database: {name}")

        result_set = self._run(resource, f"create database `{name}`;", 'create')
        if result_set.get('Rows'):
            raise ProvisioningError(
                f"Athena create database, unexpected query result: {flatten_result_set(result_set)}",
                context=self._context(resource, 'create'),
            )

        resource.physical_id = name
        current = self.get_current_state(resource)
        if current is None:
            raise ProvisioningError(
                f"Athena database {name} not found after creation",
                context=self._context(resource, 'create'),
            )
        return current

    def update(self, plan: ProvisionPlan) -> Resource:
        """Nothing to change remotely; the updatable settings only affect later queries."""
        current = self.get_current_state(plan.resource)
        if current is None:
            raise ProvisioningError(
                f"Athena database {plan.resource.properties['name']} no longer exists",
                context=self._context(plan.resource, 'update'),
            )
        return current

    def destroy(self, resource: Resource) -> None:
        """Drop the database, cascading to its tables when force_destroy is set."""
        name = resource.properties['name']
        sql = f"drop database `{name}`"
        if resource.properties.get('force_destroy'):
            sql += " cascade"
        sql += ";"

        logger.info(f"Dropping Athena database: {name}")
        result_set = self._run(resource, sql, 'delete')
        if result_set.get('Rows'):
            raise ProvisioningError(
                f"Athena drop database, unexpected query result: {flatten_result_set(result_set)}",
                context=self._context(resource, 'delete'),
            )

    def get_current_state(self, resource: Resource) -> Optional[Resource]:
        """Check whether the database exists.

        Athena only reports the name, so the returned state carries the
        properties of the given resource.
        """
        name = resource.properties['name']
        result_set = self._run(resource, "show databases;", 'read')

        if name not in result_set_values(result_set):
            logger.debug(f"Athena database {name} not found in: {flatten_result_set(result_set)}")
            return None

        return Resource(
            id=resource.id,
            type=RESOURCE_TYPE,
            physical_id=name,
            properties=dict(resource.properties),
            dependencies=list(resource.dependencies),
            tags=dict(resource.tags),
        )

    def _run(self, resource: Resource, sql: str, operation: str):
        result_configuration = build_result_configuration(
            resource.properties['bucket'],
            resource.properties.get('encryption_configuration'),
        )
        try:
            return self.runner.execute(sql, result_configuration, cancel=self.cancel)
        except DeploymentError as e:
            if e.context.resource_id is None:
                e.context.resource_id = resource.id
                e.context.resource_type = RESOURCE_TYPE
                e.context.operation = operation
            raise

    def _context(self, resource: Resource, operation: str) -> ErrorContext:
        return ErrorContext(
            resource_id=resource.id,
            resource_type=RESOURCE_TYPE,
            operation=operation,
            aws_operation='StartQueryExecution',
        )
