"""Route53 health check provisioner."""

import ipaddress
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from botocore.exceptions import ClientError
from pydantic import BaseModel, Field, field_validator, model_validator

from cloudwait.utils.errors import is_aws_error
from cloudwait.utils.logging import get_logger
from cloudwait.utils.retry import RetryStrategy

from .base import BaseProvisioner, ProvisionPlan, Resource

logger = get_logger(__name__)

RESOURCE_TYPE = 'AWS::Route53::HealthCheck'

HEALTH_CHECK_TYPES = (
    'HTTP',
    'HTTPS',
    'HTTP_STR_MATCH',
    'HTTPS_STR_MATCH',
    'TCP',
    'CALCULATED',
    'CLOUDWATCH_METRIC',
    'RECOVERY_CONTROL',
)

INSUFFICIENT_DATA_HEALTH_STATUSES = ('Healthy', 'Unhealthy', 'LastKnownStatus')

# Route53 accepts caller references of up to 64 characters. The generated
# suffix is 36 characters and joined with '-', leaving 27 for reference_name.
CALLER_REFERENCE_PREFIX = 'cloudwait-'
MAX_REFERENCE_NAME_LENGTH = 27

# ChangeTagsForResource accepts at most 10 keys to add and 10 to remove
TAG_BATCH_SIZE = 10

# Property name -> UpdateHealthCheck / HealthCheckConfig field
CONFIG_FIELDS = {
    'failure_threshold': 'FailureThreshold',
    'request_interval': 'RequestInterval',
    'fqdn': 'FullyQualifiedDomainName',
    'search_string': 'SearchString',
    'ip_address': 'IPAddress',
    'port': 'Port',
    'resource_path': 'ResourcePath',
    'invert_healthcheck': 'Inverted',
    'enable_sni': 'EnableSNI',
    'regions': 'Regions',
    'disabled': 'Disabled',
    'child_health_threshold': 'HealthThreshold',
    'child_healthchecks': 'ChildHealthChecks',
    'insufficient_data_health_status': 'InsufficientDataHealthStatus',
    'measure_latency': 'MeasureLatency',
}

UPDATABLE_PROPERTIES = (
    'failure_threshold',
    'fqdn',
    'port',
    'resource_path',
    'invert_healthcheck',
    'child_healthchecks',
    'child_health_threshold',
    'search_string',
    'insufficient_data_health_status',
    'enable_sni',
    'regions',
    'disabled',
)

TYPE_SPECIFIC_FIELDS = (
    (('CALCULATED',), ('child_healthchecks', 'child_health_threshold')),
    (('CLOUDWATCH_METRIC',), (
        'cloudwatch_alarm_name', 'cloudwatch_alarm_region', 'insufficient_data_health_status',
    )),
)


class HealthCheckProperties(BaseModel):
    """Desired state of a Route53 health check."""

    type: str
    failure_threshold: Optional[int] = Field(None, ge=1, le=10)
    request_interval: Optional[Literal[10, 30]] = None
    ip_address: Optional[str] = None
    fqdn: Optional[str] = Field(None, max_length=255)
    port: Optional[int] = Field(None, ge=1, le=65535)
    invert_healthcheck: Optional[bool] = None
    resource_path: Optional[str] = Field(None, max_length=255)
    search_string: Optional[str] = Field(None, max_length=255)
    measure_latency: bool = False
    child_healthchecks: Optional[List[str]] = Field(None, max_length=256)
    child_health_threshold: Optional[int] = Field(None, ge=0, le=256)
    cloudwatch_alarm_name: Optional[str] = None
    cloudwatch_alarm_region: Optional[str] = None
    insufficient_data_health_status: Optional[str] = None
    reference_name: Optional[str] = Field(None, max_length=MAX_REFERENCE_NAME_LENGTH)
    enable_sni: Optional[bool] = None
    regions: Optional[List[str]] = None
    disabled: bool = False

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        """Health check type is case-insensitive and stored upper-case."""
        value = v.upper()
        if value not in HEALTH_CHECK_TYPES:
            raise ValueError(f"type must be one of {', '.join(HEALTH_CHECK_TYPES)}, got {v}")
        return value

    @field_validator("ip_address")
    @classmethod
    def validate_ip_address(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            return str(ipaddress.ip_address(v))
        except ValueError:
            raise ValueError(f"expected a valid IP address, got {v}")

    @field_validator("child_healthchecks")
    @classmethod
    def validate_child_healthchecks(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        """Child health checks form a set of IDs of up to 64 characters."""
        if v is None:
            return v
        for child in v:
            if len(child) > 64:
                raise ValueError(f"child health check ID exceeds 64 characters: {child}")
        return sorted(set(v))

    @field_validator("regions")
    @classmethod
    def validate_regions(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return sorted(set(v)) if v is not None else v

    @field_validator("insufficient_data_health_status")
    @classmethod
    def validate_insufficient_data_health_status(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        for status in INSUFFICIENT_DATA_HEALTH_STATUSES:
            if status.lower() == v.lower():
                return status
        raise ValueError(
            f"insufficient_data_health_status must be one of "
            f"{', '.join(INSUFFICIENT_DATA_HEALTH_STATUSES)}, got {v}"
        )

    @model_validator(mode="after")
    def validate_type_specific_fields(self) -> "HealthCheckProperties":
        """Reject fields that do not apply to the health check type."""
        for types, names in TYPE_SPECIFIC_FIELDS:
            if self.type in types:
                continue
            for name in names:
                if getattr(self, name) is not None:
                    raise ValueError(f"{name} only applies to type {' or '.join(types)}")
        if self.measure_latency and self.type in ('CALCULATED', 'CLOUDWATCH_METRIC'):
            raise ValueError(f"measure_latency does not apply to type {self.type}")
        return self


def unique_caller_reference(reference_name: Optional[str] = None) -> str:
    """Generate a unique CallerReference, prefixed by reference_name when given."""
    timestamp = datetime.now(timezone.utc).strftime('%Y%m%d%H%M%S%f')
    suffix = f"{CALLER_REFERENCE_PREFIX}{timestamp}{uuid.uuid4().hex[:6]}"
    if reference_name:
        return f"{reference_name}-{suffix}"
    return suffix


def health_check_arn(health_check_id: str, partition: str = 'aws') -> str:
    return f"arn:{partition}:route53:::healthcheck/{health_check_id}"


class Route53HealthCheckProvisioner(BaseProvisioner):
    """Provisioner for Route53 health checks."""

    resource_type = RESOURCE_TYPE
    properties_model = HealthCheckProperties
    force_new_properties = frozenset({
        'type', 'request_interval', 'ip_address', 'measure_latency', 'reference_name',
    })

    def __init__(
        self,
        boto_session,
        partition: str = 'aws',
        retry_strategy: Optional[RetryStrategy] = None,
        client_config=None,
    ):
        """Initialize Route53 health check provisioner.

        Args:
            boto_session: Configured boto3 session
            partition: ARN partition used when building health check ARNs
            retry_strategy: Retry policy for tag changes
            client_config: botocore client config for the Route53 client
        """
        super().__init__(boto_session, client_config)
        self.route53_client = self.client('route53')
        self.partition = partition
        self.retry = retry_strategy or RetryStrategy()

    def values_equal(self, name: str, desired: Any, current: Any) -> bool:
        if name == 'ip_address' and desired and current:
            return ipaddress.ip_address(desired) == ipaddress.ip_address(current)
        if name == 'type' and desired and current:
            return desired.upper() == current.upper()
        return desired == current

    def create(self, resource: Resource) -> Resource:
        """Create the health check, tag it and read it back."""
        properties = resource.properties
        config = self.build_health_check_config(properties)
        caller_reference = unique_caller_reference(properties.get('reference_name'))

        logger.info(f"Creating Route53 health check: {resource.id} ({config['Type']})")
        response = self.route53_client.create_health_check(
            CallerReference=caller_reference,
            HealthCheckConfig=config,
        )
        health_check_id = response['HealthCheck']['Id']
        resource.physical_id = health_check_id

        if resource.tags:
            self._change_tags(health_check_id, add=resource.tags, remove=[])

        return self._read_back(resource)

    def update(self, plan: ProvisionPlan) -> Resource:
        """Send only the changed fields, then reconcile tags."""
        resource = plan.resource
        health_check_id = resource.physical_id
        changes = self.build_update_input(resource.properties, plan.changed_properties)

        if changes:
            logger.info(f"Updating Route53 health check {health_check_id}: {', '.join(sorted(changes))}")
            self.route53_client.update_health_check(HealthCheckId=health_check_id, **changes)

        if plan.tags_changed:
            old_tags = plan.current_state.tags if plan.current_state else {}
            add = {k: v for k, v in resource.tags.items() if old_tags.get(k) != v}
            remove = [k for k in old_tags if k not in resource.tags]
            self._change_tags(health_check_id, add=add, remove=remove)

        return self._read_back(resource)

    def destroy(self, resource: Resource) -> None:
        """Delete the health check; an already deleted one counts as success."""
        health_check_id = resource.physical_id
        if not health_check_id:
            return

        logger.debug(f"Deleting Route53 health check: {health_check_id}")
        try:
            self.route53_client.delete_health_check(HealthCheckId=health_check_id)
        except ClientError as e:
            if not is_aws_error(e, 'NoSuchHealthCheck'):
                raise

    def get_current_state(self, resource: Resource) -> Optional[Resource]:
        """Fetch the health check and its tags; None when it does not exist."""
        health_check_id = resource.physical_id
        if not health_check_id:
            return None

        try:
            response = self.route53_client.get_health_check(HealthCheckId=health_check_id)
        except ClientError as e:
            if is_aws_error(e, 'NoSuchHealthCheck'):
                logger.warning(f"Route53 health check {health_check_id} not found")
                return None
            raise

        health_check = response['HealthCheck']
        properties = self.flatten_health_check_config(health_check['HealthCheckConfig'])
        if resource.properties.get('reference_name'):
            properties['reference_name'] = resource.properties['reference_name']
        properties['arn'] = health_check_arn(health_check_id, self.partition)

        tags_response = self.route53_client.list_tags_for_resource(
            ResourceType='healthcheck',
            ResourceId=health_check_id,
        )
        tags = {
            tag['Key']: tag.get('Value', '')
            for tag in tags_response['ResourceTagSet'].get('Tags', [])
            if not tag['Key'].startswith('aws:')
        }

        return Resource(
            id=resource.id,
            type=RESOURCE_TYPE,
            physical_id=health_check_id,
            properties=properties,
            dependencies=list(resource.dependencies),
            tags=tags,
        )

    @staticmethod
    def build_health_check_config(properties: Dict[str, Any]) -> Dict[str, Any]:
        """Marshal properties into a CreateHealthCheck HealthCheckConfig.

        Latency measurement does not apply to CALCULATED or CLOUDWATCH_METRIC
        checks, child checks only to CALCULATED, and the alarm only to
        CLOUDWATCH_METRIC.
        """
        check_type = properties['type'].upper()
        config: Dict[str, Any] = {'Type': check_type}

        for name in ('request_interval', 'failure_threshold', 'fqdn', 'search_string',
                     'ip_address', 'port', 'resource_path', 'regions'):
            if properties.get(name):
                config[CONFIG_FIELDS[name]] = properties[name]

        if check_type not in ('CALCULATED', 'CLOUDWATCH_METRIC') and properties.get('measure_latency'):
            config['MeasureLatency'] = True

        if properties.get('invert_healthcheck'):
            config['Inverted'] = True

        if properties.get('enable_sni'):
            config['EnableSNI'] = True

        if check_type == 'CALCULATED':
            if properties.get('child_healthchecks'):
                config['ChildHealthChecks'] = list(properties['child_healthchecks'])
            if properties.get('child_health_threshold'):
                config['HealthThreshold'] = properties['child_health_threshold']

        if check_type == 'CLOUDWATCH_METRIC':
            alarm = {}
            if properties.get('cloudwatch_alarm_name'):
                alarm['Name'] = properties['cloudwatch_alarm_name']
            if properties.get('cloudwatch_alarm_region'):
                alarm['Region'] = properties['cloudwatch_alarm_region']
            config['AlarmIdentifier'] = alarm

            if properties.get('insufficient_data_health_status'):
                config['InsufficientDataHealthStatus'] = properties['insufficient_data_health_status']

        if properties.get('disabled'):
            config['Disabled'] = True

        return config

    @staticmethod
    def build_update_input(properties: Dict[str, Any], changed: List[str]) -> Dict[str, Any]:
        """Marshal changed properties into UpdateHealthCheck arguments."""
        changes: Dict[str, Any] = {}
        for name in changed:
            if name in UPDATABLE_PROPERTIES:
                value = properties.get(name)
                if name in ('child_healthchecks', 'regions'):
                    value = list(value or [])
                changes[CONFIG_FIELDS[name]] = value

        if 'cloudwatch_alarm_name' in changed or 'cloudwatch_alarm_region' in changed:
            changes['AlarmIdentifier'] = {
                'Name': properties.get('cloudwatch_alarm_name', ''),
                'Region': properties.get('cloudwatch_alarm_region', ''),
            }

        return changes

    @staticmethod
    def flatten_health_check_config(config: Dict[str, Any]) -> Dict[str, Any]:
        """Map a HealthCheckConfig from AWS back onto properties."""
        properties: Dict[str, Any] = {'type': config['Type']}
        for name, field in CONFIG_FIELDS.items():
            if field in config:
                properties[name] = config[field]

        for name in ('child_healthchecks', 'regions'):
            if name in properties:
                properties[name] = sorted(properties[name])

        properties.setdefault('measure_latency', False)
        properties.setdefault('disabled', False)

        alarm = config.get('AlarmIdentifier')
        if alarm:
            properties['cloudwatch_alarm_name'] = alarm.get('Name')
            properties['cloudwatch_alarm_region'] = alarm.get('Region')

        return properties

    def _change_tags(self, health_check_id: str, add: Dict[str, str], remove: List[str]) -> None:
        add_tags = [{'Key': k, 'Value': v} for k, v in sorted(add.items())]
        remove_keys = sorted(remove)

        while add_tags or remove_keys:
            request: Dict[str, Any] = {
                'ResourceType': 'healthcheck',
                'ResourceId': health_check_id,
            }
            if add_tags:
                request['AddTags'] = add_tags[:TAG_BATCH_SIZE]
                add_tags = add_tags[TAG_BATCH_SIZE:]
            if remove_keys:
                request['RemoveTagKeys'] = remove_keys[:TAG_BATCH_SIZE]
                remove_keys = remove_keys[TAG_BATCH_SIZE:]
            self.retry.execute_with_retry(self.route53_client.change_tags_for_resource, **request)

    def _read_back(self, resource: Resource) -> Resource:
        current = self.get_current_state(resource)
        if current is None:
            # Eventual consistency right after a write; report what was sent
            logger.warning(f"Route53 health check {resource.physical_id} not readable yet")
            return resource
        return current
