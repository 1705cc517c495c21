"""Tests for structured errors and logging helpers."""

import io

from loguru import logger

from rholang_orchestrator.types.errors import (
    ErrorCode,
    ErrorContext,
    HandshakeError,
    OrchestratorError,
    RestartExhaustedError,
    ValidatorAlreadyRunningError,
)
from rholang_orchestrator.utils.logger import (
    base36_encode,
    configure_logging,
    generate_activation_id,
    get_activation_id,
    to_loguru_level,
    with_activation_id,
)
from rholang_orchestrator.utils.subprocess_util import quote_command


class TestErrors:
    def test_restart_exhausted(self):
        error = RestartExhaustedError(6, 5)
        assert isinstance(error, OrchestratorError)
        assert error.code == ErrorCode.RESTART_EXHAUSTED
        assert error.context.additional_info == {"restart_count": 6, "max_restart_count": 5}
        assert "max 5" in str(error)

    def test_formatted_message(self):
        error = HandshakeError(
            "initialize timed out",
            context=ErrorContext(operation="initialize", executable="/bin/server"),
        )
        text = error.get_formatted_message()
        assert text.startswith("[Error] Language server failed to initialize.")
        assert "Code: 3001" in text
        assert "Executable: /bin/server" in text
        assert "Run: rholang-orchestrator run --log-level debug" in text

    def test_to_dict(self):
        data = ValidatorAlreadyRunningError(4242).to_dict()
        assert data["name"] == "ValidatorAlreadyRunningError"
        assert data["code"] == 2002
        assert data["context"]["additional_info"] == {"pid": 4242}
        assert data["original_error"] is None


class TestActivationId:
    def test_format(self):
        parts = generate_activation_id().split("_")
        assert parts[0] == "act"
        assert len(parts[2]) == 8

    def test_base36(self):
        assert base36_encode(0) == "0"
        assert base36_encode(35) == "z"
        assert base36_encode(36) == "10"

    def test_scope(self):
        assert get_activation_id() is None
        with with_activation_id("act_test") as value:
            assert value == "act_test"
            assert get_activation_id() == "act_test"
        assert get_activation_id() is None

    def test_records_carry_activation_id(self):
        stream = io.StringIO()
        configure_logging("debug", sink=stream)
        with with_activation_id("act_abc"):
            logger.info("hello")
        logger.info("outside")
        lines = stream.getvalue().splitlines()
        assert "act_abc" in lines[0]
        assert "| - |" in lines[1]


class TestLevels:
    def test_server_levels_map_to_loguru(self):
        assert to_loguru_level("warn") == "WARNING"
        assert to_loguru_level("TRACE") == "TRACE"
        assert to_loguru_level("nonsense") == "INFO"

    def test_level_filters_output(self):
        stream = io.StringIO()
        configure_logging("error", sink=stream)
        logger.warning("quiet")
        logger.error("loud")
        assert "quiet" not in stream.getvalue()
        assert "loud" in stream.getvalue()


def test_quote_command():
    assert quote_command("/opt/my server", ["--log-level", "info"]) == "'/opt/my server' --log-level info"
