"""Tests for OrchestratorConfig, GrpcEndpoint and settings loading."""

import dataclasses
import json

import pytest

from rholang_orchestrator.config import (
    CompletionOptions,
    GrpcEndpoint,
    OrchestratorConfig,
    ValidatorBackend,
    flatten_settings,
    load_settings,
)
from rholang_orchestrator.types.errors import ConfigurationError, ErrorCode


class TestDefaults:
    """Default values mirror the editor extension's settings schema."""

    def test_default_configuration_values(self):
        config = OrchestratorConfig()
        assert config.server_path == "rholang-language-server"
        assert config.log_level == "info"
        assert config.wire_log is False
        assert config.backend == "rust"
        assert config.grpc_address == "localhost:40402"
        assert config.rnode_path == "rnode"
        assert config.auto_start is True

    def test_completion_defaults(self):
        completion = OrchestratorConfig().completion
        assert completion.force_incomplete is True
        assert completion.preserve_sort_text is True
        assert completion.ensure_filter_text is True

    def test_extra_args_default_empty(self):
        assert OrchestratorConfig().extra_args == ()

    def test_readiness_defaults(self):
        config = OrchestratorConfig()
        assert config.ready_attempts == 30
        assert config.ready_interval == 1.0
        assert config.probe_timeout == 2.0

    def test_config_is_immutable(self):
        config = OrchestratorConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.backend = "grpc"  # type: ignore[misc]

    def test_replace_returns_new_snapshot(self):
        config = OrchestratorConfig()
        changed = config.replace(auto_start=False)
        assert changed.auto_start is False
        assert config.auto_start is True


class TestFromSettings:
    def test_dotted_keys(self):
        config = OrchestratorConfig.from_settings({
            "server.path": "/opt/rholang/bin/rholang-language-server",
            "server.logLevel": "debug",
            "server.wireLog": True,
            "server.extraArgs": ["--foo", "bar"],
            "validatorBackend": "grpc",
            "grpcAddress": "node.example:50000",
            "rnode.autoStart": False,
        })
        assert config.server_path == "/opt/rholang/bin/rholang-language-server"
        assert config.log_level == "debug"
        assert config.wire_log is True
        assert config.extra_args == ("--foo", "bar")
        assert config.validator_backend is ValidatorBackend.GRPC
        assert config.grpc_endpoint == GrpcEndpoint("node.example", 50000)
        assert config.auto_start is False

    def test_nested_settings(self):
        config = OrchestratorConfig.from_settings({
            "server": {"logLevel": "trace"},
            "rnode": {"path": "/usr/local/bin/rnode"},
            "completion": {"forceIncomplete": False},
        })
        assert config.log_level == "trace"
        assert config.rnode_path == "/usr/local/bin/rnode"
        assert config.completion == CompletionOptions(force_incomplete=False)

    def test_log_level_normalized(self):
        config = OrchestratorConfig.from_settings({"server.logLevel": " DEBUG "})
        assert config.log_level == "debug"

    def test_vscode_prefix_stripped(self):
        config = OrchestratorConfig.from_settings({
            "rholang.validatorBackend": "grpc",
            "rholang.completion.preserveSortText": False,
        })
        assert config.backend == "grpc"
        assert config.completion.preserve_sort_text is False

    def test_wrong_type_falls_back_to_default(self):
        config = OrchestratorConfig.from_settings({
            "server.wireLog": "yes",
            "server.extraArgs": "--foo",
            "rnode.readyAttempts": 0,
        })
        assert config.wire_log is False
        assert config.extra_args == ()
        assert config.ready_attempts == 30

    def test_unknown_keys_ignored(self):
        config = OrchestratorConfig.from_settings({"editor.fontSize": 14})
        assert config == OrchestratorConfig()

    def test_millisecond_settings(self):
        config = OrchestratorConfig.from_settings({
            "rnode.readyIntervalMs": 250,
            "rnode.probeTimeoutMs": 500,
        })
        assert config.ready_interval == 0.25
        assert config.probe_timeout == 0.5

    def test_unknown_backend_kept_raw(self):
        config = OrchestratorConfig.from_settings({"validatorBackend": "bogus"})
        assert config.backend == "bogus"
        assert config.validator_backend is None

    def test_flatten_settings(self):
        flat = flatten_settings({"rholang": {"server": {"path": "x"}}, "grpcAddress": "a:1"})
        assert flat == {"server.path": "x", "grpcAddress": "a:1"}


class TestGrpcEndpoint:
    def test_parse_host_port(self):
        endpoint = GrpcEndpoint.parse("localhost:40402")
        assert endpoint.host == "localhost"
        assert endpoint.port == 40402
        assert str(endpoint) == "localhost:40402"

    def test_health_port_is_port_plus_one(self):
        assert GrpcEndpoint.parse("localhost:40402").health_port == 40403

    def test_ipv6_literal(self):
        endpoint = GrpcEndpoint.parse("[::1]:40402")
        assert endpoint.host == "[::1]"

    @pytest.mark.parametrize(
        "text",
        ["localhost", "localhost:", ":40402", "localhost:abc", "a b:1", "host:1:2", "host:65535", "host:0"],
    )
    def test_invalid_addresses(self, text):
        with pytest.raises(ValueError):
            GrpcEndpoint.parse(text)

    def test_malformed_address_yields_no_endpoint(self):
        assert OrchestratorConfig(grpc_address="nope").grpc_endpoint is None


class TestLoadSettings:
    def test_missing_file_is_empty(self, tmp_path):
        assert load_settings(tmp_path / "settings.json") == {}

    def test_reads_json_object(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"rholang.server.logLevel": "warn"}))
        config = OrchestratorConfig.from_settings(load_settings(path))
        assert config.log_level == "warn"

    def test_malformed_json_raises(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(path)
        assert exc_info.value.code == ErrorCode.SETTINGS_UNREADABLE

    def test_non_object_raises(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigurationError):
            load_settings(path)
