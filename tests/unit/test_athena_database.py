"""Tests for the Athena database provisioner."""

import pytest
from botocore.stub import ANY, Stubber
from pydantic import ValidationError

from cloudwait.poller import UnexpectedStateError
from cloudwait.provisioners import (
    AthenaDatabaseProvisioner,
    ChangeType,
    Resource,
    query_poll_spec,
)
from cloudwait.utils.errors import ProvisioningError

FAST_SPEC = query_poll_spec(timeout=5, initial_delay=0, poll_interval=0.01)


def database(name="analytics", physical_id=None, **properties):
    return Resource(
        id="db",
        type="AWS::Athena::Database",
        physical_id=physical_id,
        properties={"name": name, "bucket": "results", **properties},
    )


def stub_query(stub, sql, values=(), state="SUCCEEDED", reason=None, execution_id="q-1",
               result_configuration=None):
    """Queue the calls one query makes: start, one status check, results."""
    stub.add_response(
        "start_query_execution",
        {"QueryExecutionId": execution_id},
        {
            "QueryString": sql,
            "ResultConfiguration": result_configuration or {"OutputLocation": "s3://results"},
            "ClientRequestToken": ANY,
        },
    )
    status = {"State": state}
    if reason:
        status["StateChangeReason"] = reason
    stub.add_response(
        "get_query_execution",
        {"QueryExecution": {"QueryExecutionId": execution_id, "Status": status}},
        {"QueryExecutionId": execution_id},
    )
    if state == "SUCCEEDED":
        stub.add_response(
            "get_query_results",
            {"ResultSet": {"Rows": [{"Data": [{"VarCharValue": v}]} for v in values]}},
            {"QueryExecutionId": execution_id},
        )


@pytest.fixture
def provisioner(boto_session):
    return AthenaDatabaseProvisioner(boto_session, poll_spec=FAST_SPEC)


@pytest.fixture
def stubber(provisioner):
    with Stubber(provisioner.athena_client) as stub:
        yield stub
        stub.assert_no_pending_responses()


class TestAthenaDatabaseProperties:
    """Tests for property validation."""

    def test_valid(self, provisioner):
        properties = provisioner.validate_properties({"name": "web_logs_2024", "bucket": "results"})
        assert properties == {"name": "web_logs_2024", "bucket": "results", "force_destroy": False}

    def test_name_must_be_lowercase(self, provisioner):
        with pytest.raises(ValidationError):
            provisioner.validate_properties({"name": "WebLogs", "bucket": "results"})

    def test_name_rejects_punctuation(self, provisioner):
        with pytest.raises(ValidationError):
            provisioner.validate_properties({"name": "web-logs", "bucket": "results"})

    def test_encryption_option_checked(self, provisioner):
        with pytest.raises(ValidationError):
            provisioner.validate_properties({
                "name": "logs",
                "bucket": "results",
                "encryption_configuration": {"encryption_option": "AES"},
            })


class TestAthenaDatabasePlan:
    """Tests for change planning."""

    def test_name_change_replaces(self, provisioner):
        plan = provisioner.plan(database("new_name"), database("old_name", physical_id="old_name"))
        assert plan.change_type is ChangeType.REPLACE

    def test_force_destroy_change_updates(self, provisioner):
        plan = provisioner.plan(database(force_destroy=True), database(force_destroy=False, physical_id="analytics"))
        assert plan.change_type is ChangeType.UPDATE
        assert plan.changed_properties == ["force_destroy"]

    def test_missing_database_creates(self, provisioner):
        assert provisioner.plan(database(), None).change_type is ChangeType.CREATE


class TestAthenaDatabaseProvisioner:
    """Tests for provisioning against a stubbed Athena client."""

    def test_create(self, provisioner, stubber):
        stub_query(stubber, "create database `analytics`;", execution_id="q-create")
        stub_query(stubber, "show databases;", ["default", "analytics"], execution_id="q-show")

        created = provisioner.create(database())

        assert created.physical_id == "analytics"
        assert created.properties["name"] == "analytics"

    def test_create_with_encryption(self, provisioner, stubber):
        encryption = {"encryption_option": "SSE_KMS", "kms_key": "key-1"}
        result_configuration = {
            "OutputLocation": "s3://results",
            "EncryptionConfiguration": {"EncryptionOption": "SSE_KMS", "KmsKey": "key-1"},
        }
        stub_query(stubber, "create database `analytics`;", result_configuration=result_configuration)
        stub_query(stubber, "show databases;", ["analytics"], result_configuration=result_configuration)

        created = provisioner.create(database(encryption_configuration=encryption))

        assert created.physical_id == "analytics"

    def test_create_rejects_unexpected_rows(self, provisioner, stubber):
        stub_query(stubber, "create database `analytics`;", ["something odd"])

        with pytest.raises(ProvisioningError, match="unexpected query result: something odd"):
            provisioner.create(database())

    def test_create_failure_reports_reason(self, provisioner, stubber):
        stub_query(
            stubber, "create database `analytics`;",
            state="FAILED", reason="FAILED: Database analytics already exists",
        )

        with pytest.raises(UnexpectedStateError) as exc_info:
            provisioner.create(database())

        error = exc_info.value
        assert "already exists" in error.reason
        assert error.context.resource_id == "db"
        assert error.context.operation == "create"

    def test_get_current_state_missing(self, provisioner, stubber):
        stub_query(stubber, "show databases;", ["default"])

        assert provisioner.get_current_state(database()) is None

    def test_get_current_state_found(self, provisioner, stubber):
        stub_query(stubber, "show databases;", ["analytics", "default"])

        current = provisioner.get_current_state(database(force_destroy=True))

        assert current.physical_id == "analytics"
        assert current.properties["force_destroy"] is True

    def test_destroy(self, provisioner, stubber):
        stub_query(stubber, "drop database `analytics`;")

        provisioner.destroy(database(physical_id="analytics"))

    def test_destroy_cascade_with_force_destroy(self, provisioner, stubber):
        stub_query(stubber, "drop database `analytics` cascade;")

        provisioner.destroy(database(physical_id="analytics", force_destroy=True))

    def test_update_only_reads_back(self, provisioner, stubber):
        stub_query(stubber, "show databases;", ["analytics"])
        plan = provisioner.plan(database(force_destroy=True), database(physical_id="analytics"))

        updated = provisioner.provision(plan)

        assert updated.properties["force_destroy"] is True

    def test_replace_drops_then_creates(self, provisioner, stubber):
        stub_query(stubber, "drop database `old_name`;", execution_id="q-drop")
        stub_query(stubber, "create database `new_name`;", execution_id="q-create")
        stub_query(stubber, "show databases;", ["new_name"], execution_id="q-show")
        plan = provisioner.plan(database("new_name"), database("old_name", physical_id="old_name"))

        replaced = provisioner.provision(plan)

        assert replaced.physical_id == "new_name"
