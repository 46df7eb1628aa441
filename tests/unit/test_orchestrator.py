"""Tests for the resource orchestrator."""

import itertools
import threading

import pytest

from cloudwait.config import Config
from cloudwait.orchestrator import ExecutionStatus, ResourceOrchestrator, dependency_order
from cloudwait.poller import UnexpectedStateError
from cloudwait.provisioners import (
    AthenaDatabaseProperties,
    BaseProvisioner,
    ChangeType,
    HealthCheckProperties,
    Resource,
)
from cloudwait.state import StateManager
from cloudwait.utils.errors import ValidationError


class InMemoryProvisioner(BaseProvisioner):
    """Provisioner keeping resources in a dict instead of AWS."""

    def __init__(self, resource_type, properties_model, force_new=frozenset()):
        super().__init__(boto_session=None)
        self.resource_type = resource_type
        self.properties_model = properties_model
        self.force_new_properties = force_new
        self.remote = {}
        self.calls = []
        self.fail_on = set()
        self.ids = itertools.count(1)
        self.read_threads = set()

    def create(self, resource):
        self.calls.append(("create", resource.id))
        if resource.id in self.fail_on:
            raise UnexpectedStateError(f"create {resource.id}", "FAILED", "boom")
        resource.physical_id = f"{resource.id}-{next(self.ids)}"
        self.remote[resource.physical_id] = (dict(resource.properties), dict(resource.tags))
        return self.get_current_state(resource)

    def update(self, plan):
        resource = plan.resource
        self.calls.append(("update", resource.id))
        self.remote[resource.physical_id] = (dict(resource.properties), dict(resource.tags))
        return self.get_current_state(resource)

    def destroy(self, resource):
        self.calls.append(("destroy", resource.id))
        if resource.id in self.fail_on:
            raise RuntimeError("still in use")
        self.remote.pop(resource.physical_id, None)

    def get_current_state(self, resource):
        self.read_threads.add(threading.get_ident())
        if resource.physical_id not in self.remote:
            return None
        properties, tags = self.remote[resource.physical_id]
        return Resource(
            id=resource.id,
            type=self.resource_type,
            physical_id=resource.physical_id,
            properties=dict(properties),
            dependencies=list(resource.dependencies),
            tags=dict(tags),
        )


@pytest.fixture
def athena():
    return InMemoryProvisioner("AWS::Athena::Database", AthenaDatabaseProperties, frozenset({"name", "bucket"}))


@pytest.fixture
def route53():
    return InMemoryProvisioner("AWS::Route53::HealthCheck", HealthCheckProperties, frozenset({"type"}))


@pytest.fixture
def state_manager(tmp_path):
    manager = StateManager(str(tmp_path / "state" / "monitoring.json"))
    manager.initialize("monitoring", "us-east-1")
    return manager


@pytest.fixture
def orchestrator(sample_config_path, state_manager, athena, route53):
    config = Config(str(sample_config_path)).load()
    return ResourceOrchestrator(config, state_manager, {
        athena.resource_type: athena,
        route53.resource_type: route53,
    })


def resource(resource_id, *dependencies):
    return Resource(id=resource_id, type="t", physical_id=None, properties={}, dependencies=list(dependencies))


class TestDependencyOrder:
    """Tests for dependency ordering."""

    def test_dependencies_first(self):
        ordered = dependency_order([resource("c", "b"), resource("a"), resource("b", "a")])
        assert [r.id for r in ordered] == ["a", "b", "c"]

    def test_declaration_order_kept(self):
        ordered = dependency_order([resource("x"), resource("y"), resource("z")])
        assert [r.id for r in ordered] == ["x", "y", "z"]

    def test_cycle(self):
        with pytest.raises(ValidationError, match="Circular dependency"):
            dependency_order([resource("a", "b"), resource("b", "a")])


class TestResourceOrchestrator:
    """Tests for plan, apply, refresh, destroy and import."""

    def test_plan_fresh_project_creates_everything(self, orchestrator):
        plans = orchestrator.plan()

        assert [(p.resource.id, p.change_type) for p in plans] == [
            ("analytics", ChangeType.CREATE),
            ("ping", ChangeType.CREATE),
        ]

    def test_apply_records_state(self, orchestrator, state_manager, route53):
        events = []

        result = orchestrator.apply(progress_callback=lambda *args: events.append(args))

        assert result.is_success()
        ping = StateManager(str(state_manager.state_path)).load().get_resource("ping")
        assert ping.physical_id == "ping-1"
        assert ping.tags == {"team": "platform", "env": "prod"}
        assert ("ping", ExecutionStatus.SUCCESS, "create") in events

    def test_apply_twice_is_no_change(self, orchestrator):
        orchestrator.apply()

        plans = orchestrator.plan()

        assert all(p.change_type is ChangeType.NO_CHANGE for p in plans)

    def test_apply_stops_at_first_failure(self, orchestrator, state_manager, athena, route53):
        athena.fail_on.add("analytics")

        result = orchestrator.apply()

        assert not result.is_success()
        statuses = {r.resource_id: r.status for r in result.results}
        assert statuses == {"analytics": ExecutionStatus.FAILED, "ping": ExecutionStatus.SKIPPED}
        assert route53.calls == []
        failure = result.failed[0].error
        assert failure.context.resource_id == "analytics"
        assert "boom" in failure.message
        assert state_manager.get_resource("analytics") is None

    def test_apply_updates_changed_resource(self, orchestrator, route53):
        orchestrator.apply()
        orchestrator.config.get_resource("ping").properties["failure_threshold"] = 5

        plans = {p.resource.id: p for p in orchestrator.plan()}
        assert plans["ping"].change_type is ChangeType.UPDATE
        orchestrator.apply("ping")

        assert route53.calls[-1] == ("update", "ping")

    def test_refresh_drops_deleted_resources(self, orchestrator, state_manager, athena, route53):
        orchestrator.apply()
        route53.remote.clear()

        exists = orchestrator.refresh()

        assert exists == {"analytics": True, "ping": False}
        assert state_manager.get_resource("ping") is None
        assert state_manager.get_resource("analytics") is not None

    def test_refresh_reads_off_the_calling_thread(self, orchestrator, athena, route53):
        orchestrator.apply()
        athena.read_threads.clear()
        route53.read_threads.clear()

        orchestrator.refresh()

        assert threading.get_ident() not in athena.read_threads | route53.read_threads

    def test_destroy_reverse_order(self, orchestrator, state_manager, athena, route53):
        orchestrator.apply()

        result = orchestrator.destroy()

        assert result.is_success()
        assert [r.resource_id for r in result.results] == ["ping", "analytics"]
        assert state_manager.get_state().resources == {}

    def test_destroy_failure_keeps_state(self, orchestrator, state_manager, route53):
        orchestrator.apply()
        route53.fail_on.add("ping")

        result = orchestrator.destroy()

        assert [r.status for r in result.results] == [ExecutionStatus.FAILED, ExecutionStatus.SUCCESS]
        assert state_manager.get_resource("ping") is not None

    def test_import_existing(self, orchestrator, state_manager, route53):
        route53.remote["hc-external"] = ({"type": "HTTPS", "fqdn": "example.com"}, {})

        imported = orchestrator.import_resource("ping", "hc-external")

        assert imported.physical_id == "hc-external"
        assert state_manager.get_resource("ping").physical_id == "hc-external"

    def test_import_missing(self, orchestrator):
        with pytest.raises(ValidationError, match="does not exist"):
            orchestrator.import_resource("ping", "hc-nowhere")

    def test_import_undeclared(self, orchestrator):
        with pytest.raises(ValidationError, match="not declared"):
            orchestrator.import_resource("ghost", "hc-1")
