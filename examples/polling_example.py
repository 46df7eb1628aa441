"""Example usage of the poller, the Athena query runner and error handling."""

import threading

from cloudwait.poller import (
    CancellationError,
    CancellationToken,
    PollSpec,
    PollTimeoutError,
    ProbeResult,
    UnexpectedStateError,
    wait_for_terminal,
)
from cloudwait.provisioners import AthenaQueryRunner, build_result_configuration
from cloudwait.provisioners.athena import result_set_values
from cloudwait.utils import AWSClientManager, error_handler, setup_logging


def example_custom_probe():
    """Example: Polling a fake job that finishes on the third check."""
    print("=== Custom Probe ===")

    statuses = iter(["SUBMITTED", "RUNNING", "DONE"])

    def probe():
        status = next(statuses)
        return ProbeResult(result={"job": "demo", "status": status}, status=status)

    spec = PollSpec(
        pending_statuses={"SUBMITTED", "RUNNING"},
        target_statuses={"DONE"},
        failed_statuses={"ERROR"},
        timeout=10,
        poll_interval=0.2,
    )

    result = wait_for_terminal(
        spec,
        probe,
        description="demo job",
        on_status_change=lambda status: print(f"  status -> {status}"),
    )
    print(f"Finished: {result}")


def example_timeout():
    """Example: A job that never leaves the pending state."""
    print("\n=== Timeout ===")

    spec = PollSpec(pending_statuses={"RUNNING"}, target_statuses={"DONE"}, timeout=1, poll_interval=0.3)

    try:
        wait_for_terminal(spec, lambda: ProbeResult(result=None, status="RUNNING"), description="stuck job")
    except PollTimeoutError as e:
        print(f"Timed out after {e.elapsed:.1f}s, last status {e.last_status}")


def example_failure():
    """Example: A job that reports a failure status with a reason."""
    print("\n=== Failure ===")

    spec = PollSpec(pending_statuses={"RUNNING"}, target_statuses={"DONE"}, failed_statuses={"ERROR"})

    try:
        wait_for_terminal(spec, lambda: ProbeResult(result=None, status="ERROR", reason="disk full"))
    except UnexpectedStateError as e:
        print(e.to_user_message())


def example_cancellation():
    """Example: Cancelling a wait from another thread."""
    print("\n=== Cancellation ===")

    cancel = CancellationToken()
    threading.Timer(0.5, cancel.cancel).start()
    spec = PollSpec(pending_statuses={"RUNNING"}, target_statuses={"DONE"}, timeout=60, poll_interval=5)

    try:
        wait_for_terminal(spec, lambda: ProbeResult(result=None, status="RUNNING"), cancel=cancel)
    except CancellationError as e:
        print(f"Cancelled after {e.elapsed:.1f}s")


def example_athena_query(bucket: str):
    """Example: Running an Athena query to completion."""
    print("\n=== Athena Query ===")

    client_manager = AWSClientManager(region='us-east-1')
    runner = AthenaQueryRunner(client_manager.get_client('athena'))

    try:
        result_set = runner.execute("show databases;", build_result_configuration(bucket))
        for name in result_set_values(result_set):
            print(f"  {name}")
    except Exception as e:
        deployment_error = error_handler.handle_exception(e)
        print(deployment_error.to_user_message())


if __name__ == '__main__':
    setup_logging('debug')

    example_custom_probe()
    example_timeout()
    example_failure()
    example_cancellation()

    # Requires AWS credentials and an S3 bucket for query results
    # example_athena_query('my-athena-results-bucket')
