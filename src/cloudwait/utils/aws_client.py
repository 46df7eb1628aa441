"""boto3 session, client config and caller identity for one cloudwait run."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, NoCredentialsError, PartialCredentialsError

from cloudwait.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class AWSCredentials:
    """Who the run is acting as, from STS GetCallerIdentity."""
    account_id: str
    user_arn: str
    user_id: str
    region: str
    profile: Optional[str] = None

    @property
    def partition(self) -> str:
        """ARN partition of the caller: aws, aws-cn or aws-us-gov."""
        fields = self.user_arn.split(':')
        return fields[1] if len(fields) > 1 and fields[1] else 'aws'


def default_client_config(max_pool_connections: int = 10) -> Config:
    return Config(
        max_pool_connections=max_pool_connections,
        retries={'mode': 'adaptive', 'max_attempts': 5},
        connect_timeout=10,
        read_timeout=60,
    )


class AWSClientManager:
    """Lazily builds one boto3 session and caches a client per service.

    `boto_config` is the client config for everything created from the
    session, including the provisioners' own clients.
    """

    def __init__(
        self,
        profile: Optional[str] = None,
        region: Optional[str] = None,
        max_pool_connections: int = 10
    ):
        self.profile = profile
        self.region = region
        self.boto_config = default_client_config(max_pool_connections)
        self._session: Optional[boto3.Session] = None
        self._clients: Dict[str, Any] = {}
        self._credentials: Optional[AWSCredentials] = None

    @property
    def session(self) -> boto3.Session:
        if self._session is None:
            self._session = boto3.Session(profile_name=self.profile, region_name=self.region)
            logger.info(
                f"Created AWS session - Region: {self._session.region_name}, "
                f"Profile: {self.profile or 'default'}"
            )
        return self._session

    def get_client(self, service_name: str):
        """Cached client for `service_name` built with `boto_config`."""
        client = self._clients.get(service_name)
        if client is None:
            client = self.session.client(service_name, config=self.boto_config)
            self._clients[service_name] = client
            logger.debug(f"Created {service_name} client")
        return client

    def validate_credentials(self) -> AWSCredentials:
        """Resolve the caller identity once per manager.

        Raises:
            NoCredentialsError: If no credentials are configured
            PartialCredentialsError: If credentials are incomplete
            ClientError: If STS rejects the credentials
        """
        if self._credentials is not None:
            return self._credentials

        try:
            identity = self.get_client('sts').get_caller_identity()
        except (NoCredentialsError, PartialCredentialsError):
            logger.error("No usable AWS credentials found. Configure a profile, "
                         "environment variables or an instance role.")
            raise
        except ClientError as e:
            logger.error(f"Failed to validate AWS credentials: {e}")
            raise

        self._credentials = AWSCredentials(
            account_id=identity['Account'],
            user_arn=identity['Arn'],
            user_id=identity['UserId'],
            region=self.session.region_name,
            profile=self.profile,
        )
        logger.info(f"AWS credentials validated - Account: {self._credentials.account_id}, "
                    f"Region: {self._credentials.region}")
        return self._credentials

    def get_partition(self) -> str:
        return self.validate_credentials().partition
