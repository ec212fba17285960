"""
Tests for the error taxonomy.
"""

import pytest

from errors import (
    ERROR_KINDS,
    ConsoleError,
    InvalidEnvironment,
    InvalidInput,
    NotFound,
    ServerError,
    UserAborted,
    error_from_dict,
    normalize_error,
)


class TestConsoleError:
    """Test error classes."""

    def test_kinds_are_closed(self) -> None:
        assert set(ERROR_KINDS) == {
            "InvalidInput",
            "InvalidEnvironment",
            "ServerError",
            "NotFound",
            "UserAborted",
        }

    def test_to_dict(self) -> None:
        error = NotFound("no such stack", stack_name="tdl-a-ltd-dev")
        assert error.to_dict() == {
            "kind": "NotFound",
            "message": "no such stack",
            "stack_name": "tdl-a-ltd-dev",
        }

    def test_str_falls_back_to_kind(self) -> None:
        assert str(ServerError()) == "ServerError"
        assert str(InvalidInput("bad")) == "bad"

    def test_user_aborted_default_message(self) -> None:
        assert str(UserAborted()) == "Aborted"
        assert isinstance(UserAborted(), ConsoleError)


class TestErrorFromDict:
    """Test rebuilding errors from their serialized form."""

    @pytest.mark.parametrize("cls", [InvalidInput, InvalidEnvironment, ServerError, NotFound, UserAborted])
    def test_known_kinds(self, cls) -> None:
        error = error_from_dict({"kind": cls.kind, "message": "boom"})
        assert type(error) is cls
        assert error.message == "boom"

    def test_matches_on_name(self) -> None:
        error = error_from_dict({"name": "NotFound", "message": "gone", "stack": "at x"})
        assert isinstance(error, NotFound)
        assert "stack" not in error.metadata

    def test_unknown_kind_becomes_server_error(self) -> None:
        error = error_from_dict({"name": "TypeError", "message": "x is undefined"})
        assert isinstance(error, ServerError)
        assert error.message == "x is undefined"
        assert error.metadata["name"] == "TypeError"

    def test_metadata_is_kept(self) -> None:
        error = error_from_dict({"kind": "InvalidInput", "message": "m", "field": "key"})
        assert error.metadata == {"field": "key"}

    def test_missing_message(self) -> None:
        error = error_from_dict({"kind": "ServerError"})
        assert error.message == "unspecified"

    def test_string(self) -> None:
        error = error_from_dict("something broke")
        assert isinstance(error, ServerError)
        assert error.message == "something broke"

    @pytest.mark.parametrize("data", [{}, {"kind": 5}, ["InvalidInput"], 42])
    def test_malformed(self, data) -> None:
        error = error_from_dict(data)
        assert isinstance(error, ServerError)
        assert error.metadata["raw"] == data

    def test_passthrough(self) -> None:
        error = InvalidInput("x")
        assert error_from_dict(error) is error


class TestNormalizeError:
    """Test normalize_error."""

    def test_exception_passthrough(self) -> None:
        error = RuntimeError("x")
        assert normalize_error(error) is error

    def test_dict(self) -> None:
        assert isinstance(normalize_error({"kind": "NotFound", "message": "x"}), NotFound)
