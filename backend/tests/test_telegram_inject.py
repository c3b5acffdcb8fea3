"""
Telegram inject endpoint tests.

Tests mock ALL external calls (Telegram bot, Supabase storage). The config
snapshot is a real JSON file in a temp dir, re-read on every request.

Coverage:
  - Routing / method handling (405, unhandled paths)
  - Account resolution and bearer auth (401, 400, 503)
  - JSON bodies (202, 400, 413)
  - Multipart bodies (payload + optional media, boundary errors)
  - Media persistence success and non-fatal failure
  - Delegation success and failure (500)
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from tginject.errors import MediaPersistenceError
from tginject.models.inject import StoredMedia

INJECT_URL = "/telegram/inject"
TOKEN = "inject-secret"

EXAMPLE_BODY = (
    '{"update":{"update_id":1,"message":{"message_id":1,"date":0,'
    '"chat":{"id":5,"type":"private"},"text":"hi"}}}'
)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def _make_update(update_id: int = 1, text: str = "hi") -> dict:
    return {
        "update_id": update_id,
        "message": {
            "message_id": 1,
            "date": 0,
            "chat": {"id": 5, "type": "private"},
            "text": text,
        },
    }


def _single_account_config(token: str = TOKEN, enabled: bool = True) -> dict:
    return {
        "channels": {
            "telegram": {
                "botToken": "123:abc",
                "inject": {"enabled": enabled, "token": token},
            }
        }
    }


def _auth(token: str = TOKEN) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _make_fake_bot():
    bot = MagicMock()
    bot.init = AsyncMock()
    bot.handle_update = AsyncMock()
    bot.shutdown = AsyncMock()
    return bot


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def client():
    """Return a TestClient for the FastAPI app."""
    from tginject.main import app
    return TestClient(app)


@pytest.fixture()
def fake_bot():
    """Patch the bot factory used by the router and return the fake bot."""
    bot = _make_fake_bot()
    with patch("tginject.routers.telegram_inject.create_telegram_bot", return_value=bot) as factory:
        bot.factory = factory
        yield bot


@pytest.fixture()
def configured(write_config):
    return write_config(_single_account_config())


# ===========================================================================
# Routing
# ===========================================================================

class TestRouting:

    def test_get_returns_405_with_allow_header(self, client, configured):
        response = client.get(INJECT_URL)

        assert response.status_code == 405
        assert response.headers["allow"] == "POST"
        assert response.text == "Method Not Allowed"

    def test_put_returns_405(self, client, configured):
        response = client.put(INJECT_URL, content=EXAMPLE_BODY)

        assert response.status_code == 405

    def test_trace_returns_405_allowing_only_post(self, client, configured):
        response = client.request("TRACE", INJECT_URL)

        assert response.status_code == 405
        assert response.headers["allow"] == "POST"

    def test_unregistered_method_returns_405_allowing_only_post(self, client, configured):
        response = client.request("PURGE", INJECT_URL)

        assert response.status_code == 405
        assert response.headers["allow"] == "POST"
        assert response.text == "Method Not Allowed"

    def test_other_paths_are_not_handled(self, client, configured):
        response = client.post("/telegram/other", content=EXAMPLE_BODY, headers=_auth())

        assert response.status_code == 404

    def test_health_still_served(self, client):
        assert client.get("/health").json() == {"status": "ok"}


# ===========================================================================
# Authentication
# ===========================================================================

class TestAuthentication:

    def test_example_request_is_accepted(self, client, configured, fake_bot):
        response = client.post(
            INJECT_URL,
            content=EXAMPLE_BODY,
            headers={**_auth(), "Content-Type": "application/json"},
        )

        assert response.status_code == 202
        assert response.json() == {"ok": True, "message": "update processed", "updateId": 1}

    def test_missing_token_returns_plain_401(self, client, configured, fake_bot):
        response = client.post(
            INJECT_URL,
            content=EXAMPLE_BODY,
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 401
        assert response.text == "Unauthorized"
        assert response.headers["content-type"].startswith("text/plain")
        fake_bot.handle_update.assert_not_called()

    def test_wrong_token_returns_401(self, client, configured, fake_bot):
        response = client.post(
            INJECT_URL,
            content=EXAMPLE_BODY,
            headers={**_auth("inject-secreT"), "Content-Type": "application/json"},
        )

        assert response.status_code == 401
        fake_bot.handle_update.assert_not_called()

    def test_auth_happens_before_body_is_parsed(self, client, configured, fake_bot):
        response = client.post(
            INJECT_URL,
            content="{broken json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 401

    def test_inject_disabled_returns_503(self, client, write_config, fake_bot):
        write_config(_single_account_config(enabled=False))

        response = client.post(INJECT_URL, content=EXAMPLE_BODY, headers=_auth())

        assert response.status_code == 503
        assert response.json()["ok"] is False
        assert "not enabled" in response.json()["error"]

    def test_missing_config_file_returns_503(self, client, tmp_path, monkeypatch, fake_bot):
        monkeypatch.setenv("TGINJECT_CONFIG_PATH", str(tmp_path / "absent.json"))

        response = client.post(INJECT_URL, content=EXAMPLE_BODY, headers=_auth())

        assert response.status_code == 503

    def test_unreadable_config_returns_503(self, client, tmp_path, monkeypatch, fake_bot):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        monkeypatch.setenv("TGINJECT_CONFIG_PATH", str(path))

        response = client.post(INJECT_URL, content=EXAMPLE_BODY, headers=_auth())

        assert response.status_code == 503
        assert response.json()["ok"] is False

    def test_empty_secret_is_never_a_pass(self, client, write_config, fake_bot):
        write_config(_single_account_config(token=""))

        response = client.post(INJECT_URL, content=EXAMPLE_BODY, headers={"Content-Type": "application/json"})

        assert response.status_code == 503
        assert "inject.token" in response.json()["error"]
        fake_bot.handle_update.assert_not_called()

    def test_unknown_requested_account_returns_400(self, client, configured, fake_bot):
        response = client.post(
            f"{INJECT_URL}?accountId=nope",
            content=EXAMPLE_BODY,
            headers=_auth(),
        )

        assert response.status_code == 400
        assert "nope" in response.json()["error"]

    def test_requested_account_is_used(self, client, write_config, fake_bot):
        write_config({
            "channels": {
                "telegram": {
                    "accounts": {
                        "a": {"botToken": "ta", "inject": {"enabled": True, "token": "sa"}},
                        "b": {"botToken": "tb", "inject": {"enabled": True, "token": "sb"}},
                    }
                }
            }
        })

        response = client.post(f"{INJECT_URL}?accountId=b", content=EXAMPLE_BODY, headers=_auth("sb"))

        assert response.status_code == 202
        kwargs = fake_bot.factory.call_args.kwargs
        assert kwargs["token"] == "tb"
        assert kwargs["account_id"] == "b"

    def test_config_is_reloaded_per_request(self, client, write_config, fake_bot):
        write_config(_single_account_config(token="first"))
        assert client.post(INJECT_URL, content=EXAMPLE_BODY, headers=_auth("first")).status_code == 202

        write_config(_single_account_config(token="second"))
        assert client.post(INJECT_URL, content=EXAMPLE_BODY, headers=_auth("first")).status_code == 401
        assert client.post(INJECT_URL, content=EXAMPLE_BODY, headers=_auth("second")).status_code == 202


# ===========================================================================
# JSON bodies
# ===========================================================================

class TestJsonBody:

    @pytest.mark.parametrize("update_id", [0, 1, 987654321])
    def test_update_id_is_echoed(self, client, configured, fake_bot, update_id):
        response = client.post(INJECT_URL, json={"update": _make_update(update_id)}, headers=_auth())

        assert response.status_code == 202
        assert response.json()["updateId"] == update_id

    def test_update_is_delegated_unchanged(self, client, configured, fake_bot):
        update = _make_update(5, text="hello")

        client.post(INJECT_URL, json={"update": update}, headers=_auth())

        fake_bot.init.assert_awaited_once()
        fake_bot.handle_update.assert_awaited_once_with(update)
        fake_bot.shutdown.assert_awaited_once()

    def test_malformed_json_returns_400(self, client, configured, fake_bot):
        response = client.post(
            INJECT_URL,
            content="{not json",
            headers={**_auth(), "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["ok"] is False

    def test_blank_body_returns_update_required(self, client, configured, fake_bot):
        response = client.post(INJECT_URL, content="", headers=_auth())

        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "update required"}

    def test_invalid_update_shape_returns_400(self, client, configured, fake_bot):
        response = client.post(INJECT_URL, json={"update": {"update_id": "x"}}, headers=_auth())

        assert response.status_code == 400
        assert response.json()["error"] == "invalid update format"

    def test_no_message_returns_400(self, client, configured, fake_bot):
        response = client.post(INJECT_URL, json={"update": {"update_id": 1}}, headers=_auth())

        assert response.status_code == 400
        assert response.json()["error"] == "no message in update"
        fake_bot.handle_update.assert_not_called()

    def test_body_over_one_mebibyte_returns_413(self, client, configured, fake_bot):
        body = json.dumps({"update": _make_update(), "pad": "x" * (1024 * 1024)})

        response = client.post(
            INJECT_URL,
            content=body,
            headers={**_auth(), "Content-Type": "application/json"},
        )

        assert response.status_code == 413
        assert response.json() == {"ok": False, "error": "payload too large"}
        fake_bot.handle_update.assert_not_called()


# ===========================================================================
# Multipart bodies
# ===========================================================================

class TestMultipartBody:

    def _post(self, client, files=None, data=None, headers=None):
        return client.post(
            INJECT_URL,
            data=data if data is not None else {"payload": EXAMPLE_BODY},
            files=files,
            headers=headers or _auth(),
        )

    def test_payload_only(self, client, configured, fake_bot):
        with patch("tginject.routers.telegram_inject.save_media_buffer", new_callable=AsyncMock) as mock_save:
            response = self._post(client, files={"ignored": ("x.txt", b"", "text/plain")})

        assert response.status_code == 202
        mock_save.assert_not_called()
        delegated = fake_bot.handle_update.call_args[0][0]
        assert "_inject_file_path" not in delegated["message"]

    def test_media_is_stored_and_stamped_on_message(self, client, configured, fake_bot):
        stored = StoredMedia(path="inbound/default/abc-a.png", content_type="image/png")
        with patch(
            "tginject.routers.telegram_inject.save_media_buffer",
            new_callable=AsyncMock,
            return_value=stored,
        ) as mock_save:
            response = self._post(client, files={"media": ("a.png", b"\x89PN", "image/png")})

        assert response.status_code == 202
        assert response.json()["updateId"] == 1
        mock_save.assert_awaited_once()
        args = mock_save.call_args[0]
        assert args[0] == b"\x89PN"
        assert args[1] == "image/png"
        assert args[2] == "inbound"
        assert args[3] == "default"
        assert args[4] == "a.png"

        message = fake_bot.handle_update.call_args[0][0]["message"]
        assert message["_inject_file_path"] == "inbound/default/abc-a.png"
        assert message["_inject_content_type"] == "image/png"

    def test_media_failure_is_not_fatal(self, client, configured, fake_bot):
        with patch(
            "tginject.routers.telegram_inject.save_media_buffer",
            new_callable=AsyncMock,
            side_effect=MediaPersistenceError("bucket unavailable"),
        ):
            response = self._post(client, files={"media": ("a.png", b"\x89PN", "image/png")})

        assert response.status_code == 202
        message = fake_bot.handle_update.call_args[0][0]["message"]
        assert "_inject_file_path" not in message
        assert "_inject_content_type" not in message

    def test_unexpected_media_error_is_not_fatal(self, client, configured, fake_bot):
        with patch(
            "tginject.routers.telegram_inject.save_media_buffer",
            new_callable=AsyncMock,
            side_effect=RuntimeError("boom"),
        ):
            response = self._post(client, files={"media": ("a.png", b"\x89PN", "image/png")})

        assert response.status_code == 202
        fake_bot.handle_update.assert_awaited_once()

    def test_missing_payload_field_returns_400(self, client, configured, fake_bot):
        response = self._post(client, data={"other": "x"}, files={"media": ("a.png", b"123", "image/png")})

        assert response.status_code == 400
        assert response.json()["error"] == "missing payload field"

    def test_invalid_payload_json_returns_400_mentioning_json(self, client, configured, fake_bot):
        response = self._post(
            client,
            data={"payload": "{nope"},
            files={"media": ("a.png", b"123", "image/png")},
        )

        assert response.status_code == 400
        assert "JSON" in response.json()["error"]

    def test_missing_boundary_returns_400(self, client, configured, fake_bot):
        response = client.post(
            INJECT_URL,
            content=EXAMPLE_BODY,
            headers={**_auth(), "Content-Type": "multipart/form-data"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "missing multipart boundary"

    def test_boundary_never_found_returns_missing_payload(self, client, configured, fake_bot):
        response = client.post(
            INJECT_URL,
            content=b"no parts here",
            headers={**_auth(), "Content-Type": "multipart/form-data; boundary=abc"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "missing payload field"

    def test_multipart_over_ten_mebibytes_returns_413(self, client, configured, fake_bot):
        response = self._post(
            client,
            files={"media": ("big.bin", b"\x00" * (10 * 1024 * 1024 + 1), "application/octet-stream")},
        )

        assert response.status_code == 413
        fake_bot.handle_update.assert_not_called()


# ===========================================================================
# Delegation
# ===========================================================================

class TestDelegation:

    def test_handle_update_failure_returns_500(self, client, configured, fake_bot):
        fake_bot.handle_update.side_effect = RuntimeError("pipeline exploded")

        response = client.post(INJECT_URL, json={"update": _make_update()}, headers=_auth())

        assert response.status_code == 500
        assert response.json() == {"ok": False, "error": "pipeline exploded"}
        fake_bot.shutdown.assert_awaited_once()

    def test_init_failure_returns_500_and_skips_handling(self, client, configured, fake_bot):
        fake_bot.init.side_effect = ConnectionError("telegram unreachable")

        response = client.post(INJECT_URL, json={"update": _make_update()}, headers=_auth())

        assert response.status_code == 500
        assert "telegram unreachable" in response.json()["error"]
        fake_bot.handle_update.assert_not_called()

    def test_bot_construction_failure_returns_500(self, client, configured):
        with patch(
            "tginject.routers.telegram_inject.create_telegram_bot",
            side_effect=ValueError("bad token"),
        ):
            response = client.post(INJECT_URL, json={"update": _make_update()}, headers=_auth())

        assert response.status_code == 500
        assert response.json()["error"] == "bad token"

    def test_shutdown_failure_does_not_change_response(self, client, configured, fake_bot):
        fake_bot.shutdown.side_effect = RuntimeError("already closed")

        response = client.post(INJECT_URL, json={"update": _make_update()}, headers=_auth())

        assert response.status_code == 202

    def test_bot_is_built_for_resolved_account(self, client, configured, fake_bot):
        client.post(INJECT_URL, json={"update": _make_update()}, headers=_auth())

        kwargs = fake_bot.factory.call_args.kwargs
        assert kwargs["token"] == "123:abc"
        assert kwargs["account_id"] == "default"
        assert kwargs["config"]["inject"]["enabled"] is True
