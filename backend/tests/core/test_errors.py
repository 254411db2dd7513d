"""Tests for the error hierarchy — codes, families, HTTP status and envelopes."""

from peerlink.core.errors import (
    ActorFetchFailedError,
    CoordinatorNotRunningError,
    DeliveryFailedError,
    DiscoveryError,
    DiscoveryFailedError,
    ErrorCategory,
    ErrorSeverity,
    InstanceNotFoundError,
    InvalidSignatureError,
    InvalidSignatureHeaderError,
    NotFoundError,
    PeerLinkError,
    PublicKeyFetchFailedError,
    VerificationError,
)


def test_not_found_family():
    err = InstanceNotFoundError("a.test")
    assert isinstance(err, NotFoundError)
    assert err.http_status == 404
    assert err.context.domain == "a.test"
    assert "a.test" in err.message


def test_discovery_family_is_bad_gateway():
    for err in (DiscoveryFailedError("a.test", "HTTP 500"),
                ActorFetchFailedError("https://a.test/actor", "HTTP 404")):
        assert isinstance(err, DiscoveryError)
        assert err.http_status == 502


def test_verification_family_is_client_error():
    for err in (InvalidSignatureError(), InvalidSignatureHeaderError("missing"),
                PublicKeyFetchFailedError("k", "timeout")):
        assert isinstance(err, VerificationError)
        assert err.http_status == 400


def test_header_error_keeps_own_code():
    err = InvalidSignatureHeaderError("missing")
    assert isinstance(err, InvalidSignatureError)
    assert err.code == "INVALID_SIGNATURE_HEADER"


def test_delivery_failure_carries_target_and_status():
    err = DeliveryFailedError("a.test", "inbox returned HTTP 500", status_code=500)
    assert err.context.target == "a.test"
    assert err.status_code == 500
    assert err.to_response()["error"]["context"]["target"] == "a.test"


def test_response_envelope():
    body = InstanceNotFoundError("a.test").to_response()["error"]
    assert body["code"] == "RESOURCE_NOT_FOUND"
    assert body["category"] == "resource_not_found"
    assert body["severity"] == "warning"
    assert "timestamp" in body


def test_event_envelope_marks_recoverability():
    assert InvalidSignatureError().to_event()["data"]["recoverable"] is True
    event = CoordinatorNotRunningError().to_event()
    assert event["type"] == "error"
    assert event["data"]["recoverable"] is False


def test_base_defaults():
    err = PeerLinkError("boom", "X", ErrorCategory.INTERNAL)
    assert err.severity == ErrorSeverity.ERROR
    assert err.http_status == 500
