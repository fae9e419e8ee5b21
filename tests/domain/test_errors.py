"""Tests for domain errors and their HTTP-style status codes."""

import pytest

from notebook_rag.domain.errors import (
    ALL_FAILED,
    NONE_UPLOADED,
    STILL_PROCESSING,
    AccessError,
    DomainError,
    EmbeddingError,
    InputError,
    JobStoreUnavailable,
    NoEvidenceError,
)


def test_input_error_is_400() -> None:
    err = InputError("userMessage is required")
    assert isinstance(err, DomainError)
    assert err.status_code == 400
    assert err.message == "userMessage is required"


def test_access_error_factories() -> None:
    assert AccessError.forbidden().status_code == 403
    assert AccessError.not_found().status_code == 404


@pytest.mark.parametrize(
    ("reason", "status"),
    [(NONE_UPLOADED, 400), (STILL_PROCESSING, 409), (ALL_FAILED, 409)],
)
def test_no_evidence_status_by_reason(reason: str, status: int) -> None:
    err = NoEvidenceError(reason, "detail text")
    assert err.status_code == status
    assert str(err) == "detail text"


def test_no_evidence_error_is_frozen() -> None:
    err = NoEvidenceError(NONE_UPLOADED)
    with pytest.raises(AttributeError):
        err.reason = ALL_FAILED  # type: ignore[misc]


def test_default_status_codes() -> None:
    assert EmbeddingError("Failed to embed query").status_code == 500
    assert JobStoreUnavailable("down").status_code == 503
