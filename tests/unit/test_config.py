"""Tests for configuration loading and validation."""

import pytest

from cloudwait.config import Config, ConfigValidationError


class TestConfigLoad:
    """Tests for loading cloudwait.yaml."""

    def test_load_sample(self, sample_config_path):
        config = Config(str(sample_config_path)).load()

        assert config.project.name == "monitoring"
        assert config.project.region == "us-east-1"
        assert [r.id for r in config.resources] == ["analytics", "ping"]

    def test_properties_are_normalized(self, sample_config_path):
        config = Config(str(sample_config_path)).load()

        ping = config.get_resource("ping")
        assert ping.properties["type"] == "HTTPS"
        assert ping.properties["measure_latency"] is False
        assert "ip_address" not in ping.properties

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Config(str(tmp_path / "nope.yaml")).load()

    def test_invalid_yaml(self, write_config):
        path = write_config("project: [unclosed\n")

        with pytest.raises(ConfigValidationError, match="Failed to parse YAML"):
            Config(str(path)).load()

    def test_get_resource_unknown(self, sample_config_path):
        assert Config(str(sample_config_path)).load().get_resource("missing") is None


class TestConfigValidation:
    """Tests for validation errors."""

    def test_missing_project_and_resources(self, write_config):
        path = write_config("polling: {}\n")

        with pytest.raises(ConfigValidationError) as exc_info:
            Config(str(path)).load()

        locations = [error["loc"] for error in exc_info.value.errors]
        assert ["project"] in locations
        assert ["resources"] in locations

    def test_invalid_region(self, write_config):
        path = write_config("""
            project:
              name: monitoring
              region: moon-base
            resources:
              - id: db
                type: AWS::Athena::Database
                properties: {name: logs, bucket: results}
        """)

        with pytest.raises(ConfigValidationError) as exc_info:
            Config(str(path)).load()

        assert exc_info.value.errors[0]["loc"][:2] == ["project", "region"]

    def test_unsupported_resource_type(self, write_config):
        path = write_config("""
            project: {name: monitoring, region: us-east-1}
            resources:
              - id: queue
                type: AWS::SQS::Queue
        """)

        with pytest.raises(ConfigValidationError) as exc_info:
            Config(str(path)).load()

        assert exc_info.value.errors[0]["loc"][:3] == ["resources", 0, "type"]

    def test_invalid_properties_reported_with_location(self, write_config):
        path = write_config("""
            project: {name: monitoring, region: us-east-1}
            resources:
              - id: ping
                type: AWS::Route53::HealthCheck
                properties: {type: HTTP, failure_threshold: 42}
        """)

        with pytest.raises(ConfigValidationError) as exc_info:
            Config(str(path)).load()

        error = exc_info.value.errors[0]
        assert error["loc"] == ["resources", 0, "properties", "failure_threshold"]
        assert "resources -> 0 -> properties -> failure_threshold" in str(exc_info.value)

    def test_duplicate_ids(self, write_config):
        path = write_config("""
            project: {name: monitoring, region: us-east-1}
            resources:
              - id: db
                type: AWS::Athena::Database
                properties: {name: a, bucket: results}
              - id: db
                type: AWS::Athena::Database
                properties: {name: b, bucket: results}
        """)

        with pytest.raises(ConfigValidationError) as exc_info:
            Config(str(path)).load()

        assert "Duplicate resource id 'db'" in str(exc_info.value)

    def test_unknown_dependency(self, write_config):
        path = write_config("""
            project: {name: monitoring, region: us-east-1}
            resources:
              - id: db
                type: AWS::Athena::Database
                depends_on: [ghost]
                properties: {name: a, bucket: results}
        """)

        with pytest.raises(ConfigValidationError, match="Unknown resource 'ghost'"):
            Config(str(path)).load()

    def test_reserved_tag_prefix(self, write_config):
        path = write_config("""
            project:
              name: monitoring
              region: us-east-1
              tags: {"aws:owner": me}
            resources:
              - id: db
                type: AWS::Athena::Database
                properties: {name: a, bucket: results}
        """)

        with pytest.raises(ConfigValidationError, match="reserved"):
            Config(str(path)).load()

    def test_invalid_polling(self, write_config):
        path = write_config("""
            project: {name: monitoring, region: us-east-1}
            polling: {poll_interval: 0}
            resources:
              - id: db
                type: AWS::Athena::Database
                properties: {name: a, bucket: results}
        """)

        with pytest.raises(ConfigValidationError) as exc_info:
            Config(str(path)).load()

        assert exc_info.value.errors[0]["loc"][:2] == ["polling", "poll_interval"]

    def test_empty_polling_section_uses_defaults(self, write_config):
        path = write_config("""
            project: {name: monitoring, region: us-east-1}
            polling:
            resources:
              - id: db
                type: AWS::Athena::Database
                properties: {name: a, bucket: results}
        """)

        config = Config(str(path)).load()

        assert config.polling.timeout == 600.0
        assert config.poll_spec().poll_interval == 3.0

    def test_empty_project_section(self, write_config):
        path = write_config("""
            project:
            resources:
              - id: db
                type: AWS::Athena::Database
                properties: {name: a, bucket: results}
        """)

        with pytest.raises(ConfigValidationError) as exc_info:
            Config(str(path)).load()

        assert exc_info.value.errors[0]["loc"] == ["project"]

    def test_project_and_polling_must_be_mappings(self, write_config):
        path = write_config("""
            project: monitoring
            polling: 30
            resources:
              - id: db
                type: AWS::Athena::Database
                properties: {name: a, bucket: results}
        """)

        with pytest.raises(ConfigValidationError) as exc_info:
            Config(str(path)).load()

        messages = [error["msg"] for error in exc_info.value.errors]
        assert messages == ["project must be a mapping", "polling must be a mapping"]

    def test_top_level_must_be_mapping(self, write_config):
        path = write_config("- project\n- resources\n")

        with pytest.raises(ConfigValidationError, match="mapping at the top level"):
            Config(str(path)).load()


class TestDesiredResources:
    """Tests for building desired-state resources."""

    def test_project_tags_inherited(self, sample_config_path):
        resources = Config(str(sample_config_path)).load().desired_resources()

        by_id = {r.id: r for r in resources}
        assert by_id["analytics"].tags == {"team": "platform"}
        assert by_id["ping"].tags == {"team": "platform", "env": "prod"}
        assert by_id["ping"].dependencies == ["analytics"]
        assert by_id["ping"].physical_id is None

    def test_filter(self, sample_config_path):
        resources = Config(str(sample_config_path)).load().desired_resources("ping")
        assert [r.id for r in resources] == ["ping"]

    def test_poll_spec_from_polling_section(self, sample_config_path):
        spec = Config(str(sample_config_path)).load().poll_spec()

        assert spec.timeout == 120
        assert spec.initial_delay == 0
        assert spec.poll_interval == 1
        assert spec.target_statuses == {"SUCCEEDED"}

    def test_to_dict(self, sample_config_path):
        data = Config(str(sample_config_path)).load().to_dict()
        assert data["project"]["name"] == "monitoring"
        assert len(data["resources"]) == 2
