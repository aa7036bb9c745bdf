"""
Unit tests for outcome types and classified errors.

Tests cover:
- Status code classification
- Outcome construction from responses and errors
- BatchResult accessors
"""

import pytest

from sdk.cosmostore.client.base import DocumentResponse
from sdk.cosmostore.errors import CosmosStoreError, DocumentClientError
from sdk.cosmostore.response import BatchResult, OperationOutcome, OperationStatus


class TestOperationStatus:
    """Tests for status classification."""

    @pytest.mark.parametrize(
        "status_code,expected",
        [
            (200, OperationStatus.SUCCESS),
            (201, OperationStatus.SUCCESS),
            (204, OperationStatus.SUCCESS),
            (429, OperationStatus.RATE_LIMITED),
            (409, OperationStatus.CONFLICT),
            (404, OperationStatus.NOT_FOUND),
            (400, OperationStatus.FAILURE),
            (503, OperationStatus.FAILURE),
        ],
    )
    def test_from_status_code(self, status_code, expected):
        """HTTP-like codes map to statuses."""
        assert OperationStatus.from_status_code(status_code) is expected


class TestDocumentClientError:
    """Tests for DocumentClientError."""

    def test_carries_diagnostics(self):
        """Error exposes status, charge and retry hint."""
        error = DocumentClientError(
            "Request rate is large",
            status_code=429,
            request_charge=1.5,
            retry_after_ms=120,
            operation="create_document",
        )

        assert isinstance(error, CosmosStoreError)
        assert error.status is OperationStatus.RATE_LIMITED
        assert error.code == "RATE_LIMITED"
        assert error.details["retry_after_ms"] == 120
        assert str(error) == "Request rate is large"


class TestOperationOutcome:
    """Tests for OperationOutcome."""

    def test_succeeded(self):
        """Successful outcome copies the response."""
        response = DocumentResponse(document={"id": "b1"}, request_charge=6.0, status_code=201)

        outcome = OperationOutcome.succeeded("book", response)

        assert outcome.success
        assert outcome.entity == "book"
        assert outcome.document == {"id": "b1"}
        assert outcome.request_charge == 6.0
        assert outcome.status_code == 201

    def test_failed(self):
        """Failed outcome copies the error diagnostics."""
        error = DocumentClientError("exists", status_code=409, request_charge=2.0)

        outcome = OperationOutcome.failed("book", error)

        assert not outcome.success
        assert not outcome.is_rate_limited
        assert outcome.status is OperationStatus.CONFLICT
        assert outcome.error == "exists"
        assert outcome.request_charge == 2.0


class TestBatchResult:
    """Tests for BatchResult."""

    def test_entities_and_length(self):
        """Accessors list entities from both sets."""
        ok = OperationOutcome("a", OperationStatus.SUCCESS)
        bad = OperationOutcome("b", OperationStatus.NOT_FOUND, status_code=404)

        result = BatchResult(successful=(ok,), failed=(bad,), attempts=2, rounds=1)

        assert result.successful_entities == ["a"]
        assert result.failed_entities == ["b"]
        assert len(result) == 2
        assert not result.is_success

    def test_empty_result_is_success(self):
        """An empty result has nothing failed."""
        assert BatchResult().is_success
