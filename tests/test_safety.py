import pytest

from admin_reports.safety.guardian import ReadOnlyGuard, SafetyViolation

GRAPH = "https://graph.microsoft.com/v1.0"


def test_read_methods_pass():
    guard = ReadOnlyGuard()
    assert guard.validate_request("GET", f"{GRAPH}/users")
    assert guard.validate_request("head", f"{GRAPH}/users")
    assert guard.audit_record()["status"] == "CLEAN"


@pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE"])
def test_write_methods_blocked(method):
    guard = ReadOnlyGuard()
    with pytest.raises(SafetyViolation):
        guard.validate_request(method, f"{GRAPH}/users/abc")
    record = guard.audit_record()
    assert record["violations_detected"] == 1
    assert record["status"] == "VIOLATIONS_DETECTED"


def test_batch_of_gets_allowed():
    guard = ReadOnlyGuard()
    body = {"requests": [
        {"id": "0", "method": "GET", "url": "/groups/1/owners"},
        {"id": "1", "method": "GET", "url": "/teams/1"},
    ]}
    assert guard.validate_request("POST", f"{GRAPH}/$batch", body)


def test_batch_with_write_subrequest_blocked():
    guard = ReadOnlyGuard()
    body = {"requests": [
        {"id": "0", "method": "GET", "url": "/users"},
        {"id": "1", "method": "DELETE", "url": "/users/abc"},
    ]}
    with pytest.raises(SafetyViolation):
        guard.validate_request("POST", f"{GRAPH}/$batch", body)


def test_blocked_action_url_rejected_even_for_get():
    guard = ReadOnlyGuard()
    with pytest.raises(SafetyViolation):
        guard.validate_request("GET", f"{GRAPH}/teams/1/archive?x=1")


def test_batch_subrequest_to_blocked_url_rejected():
    guard = ReadOnlyGuard()
    body = {"requests": [{"id": "0", "method": "GET", "url": "/users/abc/assignLicense"}]}
    with pytest.raises(SafetyViolation):
        guard.validate_request("POST", f"{GRAPH}/$batch", body)
