from datetime import datetime, timezone

from taxdesk.services import token_service


def test_issue_token_shape_and_uniqueness():
    tokens = {token_service.issue_token() for _ in range(200)}
    assert len(tokens) == 200
    assert all(token_service.is_well_formed(t) for t in tokens)


def test_is_well_formed_rejects_bad_tokens():
    assert token_service.is_well_formed(None) is False
    assert token_service.is_well_formed("") is False
    assert token_service.is_well_formed("A" * 32) is False
    assert token_service.is_well_formed("a" * 31) is False


def test_expiry_is_calendar_days():
    start = datetime(2025, 3, 8, 12, 0, tzinfo=timezone.utc)
    assert token_service.expiry_from(30, start) == datetime(2025, 4, 7, 12, 0, tzinfo=timezone.utc)


def test_upload_url_round_trip():
    token = token_service.issue_token()
    url = token_service.build_upload_url(token, "https://app.example.com/")

    assert url == f"https://app.example.com/upload/{token}"
    assert token_service.extract_token_from_url(url) == token


def test_intake_url_falls_back_to_generic_page():
    assert token_service.build_intake_url(None, "https://app.example.com") == (
        "https://app.example.com/intake/new"
    )
    url = token_service.build_intake_url("abc", "https://app.example.com")
    assert token_service.extract_token_from_url(url, token_service.INTAKE_PATH_PREFIX) == "abc"


def test_extract_token_from_foreign_url():
    assert token_service.extract_token_from_url("https://app.example.com/other/x") is None
