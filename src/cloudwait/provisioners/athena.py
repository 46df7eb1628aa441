"""Athena query execution driven to completion by the operation poller."""

import uuid
from typing import Any, Dict, List, Optional

from cloudwait.poller import (
    CancellationToken,
    PollSpec,
    ProbeResult,
    StatusProbe,
    wait_for_terminal,
)
from cloudwait.utils.logging import get_logger
from cloudwait.utils.retry import RetryStrategy

logger = get_logger(__name__)

QUERY_STATE_QUEUED = "QUEUED"
QUERY_STATE_RUNNING = "RUNNING"
QUERY_STATE_SUCCEEDED = "SUCCEEDED"
QUERY_STATE_FAILED = "FAILED"
QUERY_STATE_CANCELLED = "CANCELLED"

ENCRYPTION_OPTIONS = ("SSE_S3", "SSE_KMS", "CSE_KMS")

# Ten minutes, first check after three seconds, then every three seconds
DEFAULT_QUERY_POLL_SPEC = PollSpec(
    pending_statuses=frozenset({QUERY_STATE_QUEUED, QUERY_STATE_RUNNING}),
    target_statuses=frozenset({QUERY_STATE_SUCCEEDED}),
    failed_statuses=frozenset({QUERY_STATE_FAILED, QUERY_STATE_CANCELLED}),
    timeout=600.0,
    initial_delay=3.0,
    poll_interval=3.0,
)


def query_poll_spec(
    timeout: float = 600.0,
    initial_delay: float = 3.0,
    poll_interval: float = 3.0,
    backoff_factor: float = 1.0,
    max_interval: Optional[float] = None,
) -> PollSpec:
    """Build a poll spec for Athena query executions with custom timing."""
    return DEFAULT_QUERY_POLL_SPEC.model_copy(update={
        'timeout': timeout,
        'initial_delay': initial_delay,
        'poll_interval': poll_interval,
        'backoff_factor': backoff_factor,
        'max_interval': max_interval,
    })


def build_result_configuration(
    bucket: str,
    encryption_configuration: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build the ResultConfiguration for StartQueryExecution.

    Args:
        bucket: S3 bucket receiving query results
        encryption_configuration: Optional dict with `encryption_option` and `kms_key`

    Returns:
        ResultConfiguration request structure
    """
    result_config: Dict[str, Any] = {'OutputLocation': f"s3://{bucket}"}

    if not encryption_configuration:
        return result_config

    encryption: Dict[str, Any] = {
        'EncryptionOption': encryption_configuration['encryption_option'],
    }
    kms_key = encryption_configuration.get('kms_key')
    if kms_key:
        encryption['KmsKey'] = kms_key

    result_config['EncryptionConfiguration'] = encryption
    return result_config


def flatten_result_set(result_set: Dict[str, Any]) -> str:
    """Join every VarChar value of a ResultSet with newlines."""
    values = []
    for row in result_set.get('Rows', []):
        for datum in row.get('Data', []):
            values.append(datum.get('VarCharValue', '') if datum else '')
    return "\n".join(values)


def result_set_values(result_set: Dict[str, Any]) -> List[str]:
    """All non-null VarChar values of a ResultSet, row by row."""
    return [
        datum['VarCharValue']
        for row in result_set.get('Rows', [])
        for datum in row.get('Data', [])
        if datum and 'VarCharValue' in datum
    ]


class AthenaQueryRunner:
    """Submits Athena queries and waits for them to finish."""

    def __init__(
        self,
        athena_client,
        poll_spec: PollSpec = DEFAULT_QUERY_POLL_SPEC,
        retry_strategy: Optional[RetryStrategy] = None,
    ):
        """Initialize the query runner.

        Args:
            athena_client: boto3 Athena client, used read-only by status probes
            poll_spec: Status sets and timing used while waiting on a query
            retry_strategy: Retry policy for the individual API calls
        """
        self.client = athena_client
        self.poll_spec = poll_spec
        self.retry = retry_strategy or RetryStrategy()

    def start(self, sql: str, result_configuration: Dict[str, Any], database: Optional[str] = None) -> str:
        """Submit a query and return its execution ID.

        Every attempt carries the same ClientRequestToken, so a retried
        submission never starts the query twice.
        """
        request: Dict[str, Any] = {
            'QueryString': sql,
            'ResultConfiguration': result_configuration,
            'ClientRequestToken': str(uuid.uuid4()),
        }
        if database:
            request['QueryExecutionContext'] = {'Database': database}
        response = self.retry.execute_with_retry(self.client.start_query_execution, **request)
        execution_id = response['QueryExecutionId']
        logger.debug(f"Started Athena query {execution_id}: {sql}")
        return execution_id

    def status_probe(self, execution_id: str) -> StatusProbe:
        """Build a probe reporting the state of one query execution."""
        def probe() -> ProbeResult:
            response = self.client.get_query_execution(QueryExecutionId=execution_id)
            status = (response or {}).get('QueryExecution', {}).get('Status')
            if not status:
                return ProbeResult(result=None, status=None)

            state = status.get('State')
            reason = None
            if state in self.poll_spec.failed_statuses:
                reason = status.get('StateChangeReason')
            return ProbeResult(result=response, status=state, reason=reason)

        return probe

    def wait(self, execution_id: str, cancel: Optional[CancellationToken] = None) -> Dict[str, Any]:
        """Block until the query succeeds and return its GetQueryExecution response.

        Raises:
            UnexpectedStateError: If the query failed or was cancelled
            PollTimeoutError: If the query is still running when the timeout elapses
            CancellationError: If `cancel` was set
        """
        return wait_for_terminal(
            self.poll_spec,
            self.status_probe(execution_id),
            cancel=cancel,
            description=f"Athena query {execution_id}",
        )

    def results(self, execution_id: str) -> Dict[str, Any]:
        """Fetch the complete ResultSet of a finished query, across all pages."""
        paginator = self.client.get_paginator('get_query_results')
        result_set: Dict[str, Any] = {'Rows': []}
        for page in paginator.paginate(QueryExecutionId=execution_id):
            page_set = page.get('ResultSet', {})
            result_set['Rows'].extend(page_set.get('Rows', []))
            if 'ResultSetMetadata' in page_set:
                result_set.setdefault('ResultSetMetadata', page_set['ResultSetMetadata'])
        return result_set

    def execute(
        self,
        sql: str,
        result_configuration: Dict[str, Any],
        cancel: Optional[CancellationToken] = None,
        database: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Run a query to completion and return its ResultSet."""
        execution_id = self.start(sql, result_configuration, database)
        self.wait(execution_id, cancel=cancel)
        return self.results(execution_id)
