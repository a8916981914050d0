"""
Unit tests for the Result track.

Covers the combinators the engine relies on: flat_map short-circuiting,
ensure, map_failure/with_context, the lazy all_of collector and the
from_computation / from_optional adapter-boundary factories.
"""

from __future__ import annotations

import pytest

from cau.result import ErrorCode, Failure, FailureDescription, Result, Success
from tests.assertions import ResultAssertions


class TestConstruction:
    def test_success_rejects_none(self) -> None:
        """
        GIVEN None as a success value
        WHEN Success is constructed
        THEN a TypeError is raised.
        """
        with pytest.raises(TypeError):
            Success(None)

    def test_value_of_failure_raises(self) -> None:
        """
        GIVEN a Failure
        WHEN value() is called
        THEN ValueError is raised carrying the failure message.
        """
        with pytest.raises(ValueError, match="boom"):
            Result.failure(ErrorCode.TECHNICAL_ERROR, "boom").value()

    def test_error_of_success_raises(self) -> None:
        with pytest.raises(ValueError):
            Result.success(1).error()

    def test_bool_reflects_track(self) -> None:
        assert Result.success(0)
        assert not Result.failure(ErrorCode.NOT_FOUND, "missing")

    def test_equality_compares_code_and_message(self) -> None:
        """
        GIVEN two failures with the same code and message but different timestamps
        WHEN compared
        THEN they are equal.
        """
        assert Result.failure(ErrorCode.NOT_FOUND, "x") == Result.failure(ErrorCode.NOT_FOUND, "x")
        assert Result.failure(ErrorCode.NOT_FOUND, "x") != Result.failure(ErrorCode.VALIDATION_ERROR, "x")
        assert Result.success(1) != Result.failure(ErrorCode.NOT_FOUND, "1")


class TestChaining:
    def test_flat_map_short_circuits_on_failure(self) -> None:
        """
        GIVEN a Failure
        WHEN flat_map is applied
        THEN the mapper is never called and the failure propagates unchanged.
        """
        calls: list[int] = []
        result = Result.failure(ErrorCode.EXTERNAL_SERVICE_ERROR, "down").flat_map(
            lambda v: Result.success(calls.append(v) or 1)
        )

        ResultAssertions.assert_failure(result, ErrorCode.EXTERNAL_SERVICE_ERROR)
        assert calls == []

    def test_ensure_turns_rejected_value_into_failure(self) -> None:
        result = Result.success("").ensure(bool, ErrorCode.VALIDATION_ERROR, "empty")

        ResultAssertions.assert_failure_message_contains(result, "empty")

    def test_ensure_passes_accepted_value(self) -> None:
        result = Result.success("id").ensure(bool, ErrorCode.VALIDATION_ERROR, "empty")

        assert ResultAssertions.assert_success(result) == "id"

    def test_map_failure_adds_context(self) -> None:
        """
        GIVEN a Failure
        WHEN map_failure applies with_context
        THEN the code is kept and the message is prefixed.
        """
        result = Result.failure(ErrorCode.EXTERNAL_SERVICE_ERROR, "Bundle fetch failed").map_failure(
            lambda err: err.with_context("https://example.com/ca.pem")
        )

        error = ResultAssertions.assert_failure(result, ErrorCode.EXTERNAL_SERVICE_ERROR)
        assert error.message == "https://example.com/ca.pem: Bundle fetch failed"

    def test_peek_runs_only_on_success(self) -> None:
        seen: list[int] = []
        Result.success(3).peek(seen.append)
        Result.failure(ErrorCode.NOT_FOUND, "x").peek(seen.append)

        assert seen == [3]


class TestAllOf:
    def test_collects_values_in_order(self) -> None:
        result = Result.all_of([Result.success(1), Result.success(2), Result.success(3)])

        assert ResultAssertions.assert_success(result) == [1, 2, 3]

    def test_stops_consuming_at_first_failure(self) -> None:
        """
        GIVEN a lazy generator whose second item fails
        WHEN all_of consumes it
        THEN the third computation is never started.
        """
        started: list[int] = []

        def _step(i: int) -> Result[int]:
            started.append(i)
            if i == 1:
                return Result.failure(ErrorCode.VALIDATION_ERROR, f"bad {i}")
            return Result.success(i)

        result = Result.all_of(_step(i) for i in range(3))

        ResultAssertions.assert_failure_message_contains(result, "bad 1")
        assert started == [0, 1]

    def test_empty_input_is_empty_success(self) -> None:
        assert ResultAssertions.assert_success(Result.all_of([])) == []


class TestAdapterBoundary:
    def test_from_computation_captures_exception(self) -> None:
        """
        GIVEN a computation that raises
        WHEN wrapped with from_computation
        THEN a Failure with the given code is returned and the exception is kept.
        """

        def _explode() -> int:
            raise OSError("disk on fire")

        result = Result.from_computation(_explode, ErrorCode.DESTINATION_ERROR, "Cannot write")

        error = ResultAssertions.assert_failure(result, ErrorCode.DESTINATION_ERROR)
        assert isinstance(error.exception, OSError)
        assert "disk on fire" in str(error)
        assert "OSError" in error.full_stack_trace()

    def test_from_optional_defaults_to_not_found(self) -> None:
        result = Result.from_optional(None, 'no source found with id "x"')

        ResultAssertions.assert_failure(result, ErrorCode.NOT_FOUND)

    def test_failure_str_has_code_and_message(self) -> None:
        desc = FailureDescription(ErrorCode.BUSINESS_RULE_ERROR, "too many deletions")

        assert str(desc) == "BUSINESS_RULE_ERROR: too many deletions"
        assert desc.full_stack_trace() == "too many deletions"

    def test_pattern_matching_on_tracks(self) -> None:
        match Result.failure(ErrorCode.NOT_FOUND, "gone"):
            case Failure(err):
                assert err.message == "gone"
            case Success(_):
                pytest.fail("expected the failure track")
