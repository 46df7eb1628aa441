"""Provisioners module for AWS resource management."""

from .base import BaseProvisioner, Resource, ProvisionPlan, ChangeType
from .athena import AthenaQueryRunner, build_result_configuration, flatten_result_set, query_poll_spec
from .athena_database import AthenaDatabaseProvisioner, AthenaDatabaseProperties
from .route53_health_check import Route53HealthCheckProvisioner, HealthCheckProperties

# Resource type -> provisioner class
PROVISIONER_TYPES = {
    AthenaDatabaseProvisioner.resource_type: AthenaDatabaseProvisioner,
    Route53HealthCheckProvisioner.resource_type: Route53HealthCheckProvisioner,
}

__all__ = [
    'BaseProvisioner',
    'Resource',
    'ProvisionPlan',
    'ChangeType',
    'AthenaQueryRunner',
    'build_result_configuration',
    'flatten_result_set',
    'query_poll_spec',
    'AthenaDatabaseProvisioner',
    'AthenaDatabaseProperties',
    'Route53HealthCheckProvisioner',
    'HealthCheckProperties',
    'PROVISIONER_TYPES',
]
