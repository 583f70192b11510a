from errors import ApiError, validation_code
from utils import field_code, is_valid_user_id, to_iso
from datetime import datetime


def test_field_code():
    assert field_code("unlockDate") == "UNLOCK_DATE"
    assert field_code("title") == "TITLE"
    assert field_code("isEmergencyAccessible") == "IS_EMERGENCY_ACCESSIBLE"


def test_validation_code():
    assert validation_code({"type": "missing", "loc": ("body", "title")}) == "MISSING_TITLE"
    assert validation_code({"type": "literal_error", "loc": ("query", "status")}) == "INVALID_STATUS"
    assert validation_code({"type": "uuid_format", "loc": ("body", "capsuleId")}) == "INVALID_UUID"
    assert validation_code({"type": "json_invalid", "loc": ("body", 12)}) == "INVALID_BODY"


def test_api_error_default_code():
    assert ApiError(404, "gone").code == "NOT_FOUND"
    assert ApiError(400, "bad", "INVALID_ID").code == "INVALID_ID"


def test_user_id_formats():
    assert is_valid_user_id("8c1d3e0a-3c55-4a8e-9a43-2f4f6f0e5b11")
    assert is_valid_user_id("user2abcdefghijklmnopq")
    assert not is_valid_user_id("short")


def test_iso_has_milliseconds():
    assert to_iso(datetime(2030, 5, 1, 8, 30, 0, 123456)) == "2030-05-01T08:30:00.123Z"


def test_unknown_route_uses_envelope(client):
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    assert response.json() == {"error": "Not Found", "code": "NOT_FOUND"}
