from __future__ import annotations

from livetrafik._redact import redact_for_log, redact_text, redact_url


def test_secret_keys_masked_in_nested_headers() -> None:
    payload = {
        "event": "broadcast",
        "apikey": "anon-key",
        "headers": {"Authorization": "Bearer anon-key", "Accept": "application/json"},
        "url": "wss://example.supabase.co/realtime/v1/websocket?apikey=anon-key&vsn=1.0.0",
    }

    redacted = redact_for_log(payload)
    assert redacted["apikey"] == "<redacted>"
    assert redacted["headers"]["Authorization"] == "<redacted>"
    assert redacted["headers"]["Accept"] == "application/json"
    assert "anon-key" not in redacted["url"]
    assert redacted["url"].endswith("&vsn=1.0.0")


def test_redact_url_keeps_other_parameters() -> None:
    url = "wss://host/socket?vsn=1.0.0&apikey=secret"
    assert redact_url(url) == "wss://host/socket?vsn=1.0.0&apikey=<redacted>"


def test_raw_join_frame_hides_access_token() -> None:
    frame = b'{"topic":"realtime:ul/vehicles/bus","payload":{"access_token":"jwt.secret"}}'

    redacted = redact_for_log(frame)

    assert "jwt.secret" not in redacted
    assert '"access_token":"<redacted>"' in redacted


def test_long_frames_are_clipped() -> None:
    assert redact_text("x" * 600, max_string=10) == "x" * 10 + "…<+590 chars>"
    assert redact_for_log({"value": "short"}, max_string=10) == {"value": "short"}
