"""Errors raised while provisioning, and translation of AWS failures into them."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError, NoCredentialsError, PartialCredentialsError

from cloudwait.utils.logging import get_logger

logger = get_logger(__name__)


class ErrorCategory(Enum):
    AWS = "aws"
    NETWORK = "network"
    STATE = "state"
    PROVISIONING = "provisioning"
    OPERATION = "operation"
    CREDENTIAL = "credential"
    PERMISSION = "permission"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    CRITICAL = "critical"  # the whole run stops
    ERROR = "error"  # one resource failed
    WARNING = "warning"


@dataclass
class ErrorContext:
    """Where an error happened."""
    resource_id: Optional[str] = None
    resource_type: Optional[str] = None
    operation: Optional[str] = None
    aws_operation: Optional[str] = None
    request_id: Optional[str] = None


class DeploymentError(Exception):
    """Base exception for every error cloudwait reports to the user."""

    category = ErrorCategory.UNKNOWN
    severity = ErrorSeverity.ERROR

    def __init__(
        self,
        message: str,
        category: Optional[ErrorCategory] = None,
        severity: Optional[ErrorSeverity] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        suggestions: Optional[List[str]] = None
    ):
        """Initialize error.

        Args:
            message: Human-readable error message
            category: Overrides the class category
            severity: Overrides the class severity
            context: Resource and operation the error belongs to
            cause: Original exception
            suggestions: Hints shown to the user
        """
        super().__init__(message)
        self.message = message
        if category is not None:
            self.category = category
        if severity is not None:
            self.severity = severity
        self.context = context or ErrorContext()
        self.cause = cause
        self.suggestions = suggestions or []

    def to_user_message(self) -> str:
        lines = [f"{self.severity.value.upper()}: {self.message}"]
        if self.context.resource_id:
            lines.append(f"   Resource: {self.context.resource_id}")
        if self.context.operation:
            lines.append(f"   Operation: {self.context.operation}")
        if self.cause:
            lines.append(f"   Cause: {self.cause}")
        if self.suggestions:
            lines.append("\nSuggested fixes:")
            lines.extend(f"   {i}. {s}" for i, s in enumerate(self.suggestions, 1))
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'message': self.message,
            'category': self.category.value,
            'severity': self.severity.value,
            'context': vars(self.context).copy(),
            'cause': str(self.cause) if self.cause else None,
            'suggestions': self.suggestions,
        }


class CredentialError(DeploymentError):
    category = ErrorCategory.CREDENTIAL
    severity = ErrorSeverity.CRITICAL


class NetworkError(DeploymentError):
    category = ErrorCategory.NETWORK


class StateError(DeploymentError):
    """State file missing, corrupt, locked or not loaded."""
    category = ErrorCategory.STATE
    severity = ErrorSeverity.CRITICAL


class ProvisioningError(DeploymentError):
    category = ErrorCategory.PROVISIONING


class ValidationError(DeploymentError):
    """Declared resources cannot be planned, e.g. a dependency cycle."""
    category = ErrorCategory.VALIDATION


@dataclass(frozen=True)
class AwsErrorInfo:
    category: ErrorCategory
    message: str
    suggestions: List[str] = field(default_factory=list)


_THROTTLED = AwsErrorInfo(
    ErrorCategory.AWS,
    'API rate limit exceeded',
    ['Retry later; single calls are already retried with backoff'],
)
_DENIED = AwsErrorInfo(
    ErrorCategory.PERMISSION,
    'Access denied',
    ['Check the IAM policies of the caller',
     'Athena queries also need s3:PutObject on the result bucket'],
)


class ErrorHandler:
    """Turns exceptions from boto3 and elsewhere into DeploymentErrors."""

    AWS_ERRORS: Dict[str, AwsErrorInfo] = {
        'InvalidClientTokenId': AwsErrorInfo(
            ErrorCategory.CREDENTIAL, 'AWS credentials are invalid',
            ['Verify them with: aws sts get-caller-identity'],
        ),
        'ExpiredToken': AwsErrorInfo(
            ErrorCategory.CREDENTIAL, 'AWS session token has expired',
            ['Refresh the session credentials'],
        ),
        'AccessDenied': _DENIED,
        'AccessDeniedException': _DENIED,
        'Throttling': _THROTTLED,
        'ThrottlingException': _THROTTLED,
        'NoSuchHealthCheck': AwsErrorInfo(
            ErrorCategory.PROVISIONING, 'Health check not found',
            ['Run "cloudwait refresh" to drop deleted resources from state'],
        ),
        'HealthCheckAlreadyExists': AwsErrorInfo(
            ErrorCategory.PROVISIONING, 'A health check with this caller reference already exists',
            ['Use a different reference_name', 'Or import the existing health check'],
        ),
        'HealthCheckInUse': AwsErrorInfo(
            ErrorCategory.PROVISIONING, 'Health check is referenced by a record set',
            ['Remove it from the Route53 records that use it first'],
        ),
        'HealthCheckVersionMismatch': AwsErrorInfo(
            ErrorCategory.PROVISIONING, 'Health check was modified concurrently',
            ['Run "cloudwait refresh" and apply again'],
        ),
        'TooManyHealthChecks': AwsErrorInfo(
            ErrorCategory.PROVISIONING, 'Route53 health check limit reached',
            ['Delete unused health checks or request a limit increase'],
        ),
        'InvalidInput': AwsErrorInfo(
            ErrorCategory.VALIDATION, 'Invalid parameter value',
        ),
        'InvalidRequestException': AwsErrorInfo(
            ErrorCategory.VALIDATION, 'Athena rejected the request',
            ['Check the query syntax, the result bucket and the workgroup settings'],
        ),
    }

    def handle_exception(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None
    ) -> DeploymentError:
        """Wrap an exception, keeping DeploymentErrors as they are."""
        context = context or ErrorContext()

        if isinstance(error, DeploymentError):
            return error

        if isinstance(error, ClientError):
            return self._from_client_error(error, context)

        if isinstance(error, NoCredentialsError):
            return CredentialError(
                'No AWS credentials found', context=context, cause=error,
                suggestions=['Run "aws configure" or pass --profile'],
            )
        if isinstance(error, PartialCredentialsError):
            return CredentialError(
                'Incomplete AWS credentials', context=context, cause=error,
                suggestions=['Check ~/.aws/credentials for the missing key'],
            )

        if isinstance(error, (ConnectionError, TimeoutError)):
            return NetworkError(f'Network error: {error}', context=context, cause=error)

        return DeploymentError(
            str(error), context=context, cause=error,
            suggestions=['Check the log file for details'],
        )

    def _from_client_error(self, error: ClientError, context: ErrorContext) -> DeploymentError:
        details = error.response.get('Error', {})
        code = details.get('Code', 'Unknown')
        message = details.get('Message', str(error))
        context.request_id = error.response.get('ResponseMetadata', {}).get('RequestId')
        context.aws_operation = context.aws_operation or error.operation_name

        info = self.AWS_ERRORS.get(code)
        if info is None:
            return DeploymentError(
                f"AWS Error ({code}): {message}",
                category=ErrorCategory.AWS, context=context, cause=error,
                suggestions=[f'AWS request ID: {context.request_id}'],
            )
        return DeploymentError(
            f"{info.message}: {message}",
            category=info.category, context=context, cause=error,
            suggestions=list(info.suggestions),
        )

    def log_error(self, error: DeploymentError):
        if error.severity is ErrorSeverity.WARNING:
            logger.warning(error.to_user_message())
        else:
            logger.error(error.to_user_message())
        logger.debug(f"Error details: {error.to_dict()}")


error_handler = ErrorHandler()


def is_aws_error(error: Exception, code: str) -> bool:
    """Check whether an exception is a botocore ClientError with the given code."""
    if not isinstance(error, ClientError):
        return False
    return error.response.get('Error', {}).get('Code') == code
