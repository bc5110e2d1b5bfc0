"""Tests for SessionManager: session restore, password fallback and persistence."""

import json
import stat
from unittest.mock import AsyncMock, MagicMock

import pytest
from matrix_prompts.core.exceptions import MatrixAuthenticationError
from matrix_prompts.matrix.session_manager import SessionManager
from nio import LoginResponse, WhoamiResponse

USER_ID = "@bot:example.org"


@pytest.fixture()
def mock_client():
    client = MagicMock()
    client.user_id = USER_ID
    client.access_token = ""
    client.device_id = None
    client.login = AsyncMock()
    client.whoami = AsyncMock()

    def restore_login(user_id, device_id, access_token):
        client.user_id = user_id
        client.device_id = device_id
        client.access_token = access_token

    client.restore_login = MagicMock(side_effect=restore_login)
    return client


@pytest.fixture()
def session_file(tmp_path):
    return tmp_path / "session" / "matrix_session.json"


def _login_response():
    response = MagicMock(spec=LoginResponse)
    response.user_id = USER_ID
    response.device_id = "DEVICE"
    response.access_token = "syt_fresh_token"
    return response


def _write_session(path, **overrides):
    data = {"access_token": "syt_saved_token", "device_id": "SAVED", "user_id": USER_ID}
    data.update(overrides)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))


class TestLogin:
    @pytest.mark.asyncio
    async def test_password_login_saves_session(self, mock_client, session_file):
        mock_client.login.return_value = _login_response()
        manager = SessionManager(mock_client, "secret", str(session_file), "Prompts")

        await manager.login()

        mock_client.login.assert_awaited_once_with("secret", device_name="Prompts")
        saved = json.loads(session_file.read_text())
        assert saved == {
            "access_token": "syt_fresh_token",
            "device_id": "DEVICE",
            "user_id": USER_ID,
        }
        assert stat.S_IMODE(session_file.stat().st_mode) == 0o600
        assert not session_file.with_suffix(".tmp").exists()

    @pytest.mark.asyncio
    async def test_restores_valid_session(self, mock_client, session_file):
        _write_session(session_file)
        mock_client.whoami.return_value = MagicMock(spec=WhoamiResponse)
        manager = SessionManager(mock_client, "secret", str(session_file))

        await manager.login()

        mock_client.restore_login.assert_called_once_with(
            USER_ID, "SAVED", "syt_saved_token"
        )
        mock_client.login.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_token_falls_back_to_password(self, mock_client, session_file):
        _write_session(session_file)
        mock_client.whoami.return_value = MagicMock(message="Unknown token")
        mock_client.login.return_value = _login_response()
        manager = SessionManager(mock_client, "secret", str(session_file))

        await manager.login()

        mock_client.login.assert_awaited_once()
        assert json.loads(session_file.read_text())["access_token"] == "syt_fresh_token"

    @pytest.mark.asyncio
    async def test_other_users_session_ignored(self, mock_client, session_file):
        _write_session(session_file, user_id="@someone-else:example.org")
        mock_client.login.return_value = _login_response()
        manager = SessionManager(mock_client, "secret", str(session_file))

        await manager.login()

        mock_client.restore_login.assert_not_called()
        mock_client.login.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_incomplete_session_ignored(self, mock_client, session_file):
        _write_session(session_file, device_id="")
        mock_client.login.return_value = _login_response()
        manager = SessionManager(mock_client, "secret", str(session_file))

        await manager.login()

        mock_client.restore_login.assert_not_called()

    @pytest.mark.asyncio
    async def test_corrupt_session_file_ignored(self, mock_client, session_file):
        session_file.parent.mkdir(parents=True)
        session_file.write_text("{not json")
        mock_client.login.return_value = _login_response()
        manager = SessionManager(mock_client, "secret", str(session_file))

        await manager.login()

        mock_client.login.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_login_failure_raises(self, mock_client, session_file):
        mock_client.login.return_value = MagicMock(message="Invalid password")
        manager = SessionManager(mock_client, "wrong", str(session_file))

        with pytest.raises(MatrixAuthenticationError, match="Login failed"):
            await manager.login()

        assert not session_file.exists()

    @pytest.mark.asyncio
    async def test_no_session_and_no_password_raises(self, mock_client, session_file):
        manager = SessionManager(mock_client, "", str(session_file))

        with pytest.raises(MatrixAuthenticationError, match="no password"):
            await manager.login()

        mock_client.login.assert_not_awaited()


def test_redact_token():
    assert SessionManager._redact_token("syt_abcdefghijklmnop") == "syt_abcdef..."
    assert SessionManager._redact_token("short") == "***"
