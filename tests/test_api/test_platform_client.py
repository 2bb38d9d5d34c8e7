"""Tests for the platform API client."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from ilaw.storyreader.api.platform import (
    PlatformAuthError,
    PlatformClient,
    PlatformError,
    PlatformNotFoundError,
)
from ilaw.storyreader.db.schemas import BookResponse, PageResponse

BASE_URL = "http://reader.test"


def ok_response(body: dict) -> MagicMock:
    response = MagicMock()
    response.json.return_value = body
    response.raise_for_status = MagicMock()
    return response


def error_response(status: int, body=None) -> MagicMock:
    response = MagicMock()
    response.status_code = status
    if body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    response.raise_for_status.side_effect = requests.exceptions.HTTPError(response=response)
    return response


class TestPlatformClientInit:
    """Tests for client construction."""

    def test_bearer_header(self):
        """Test the token is sent as a Bearer header."""
        client = PlatformClient(BASE_URL, token="abc")

        assert client._session.headers["Authorization"] == "Bearer abc"
        assert "User-Agent" in client._session.headers

    def test_no_token(self):
        """Test no Authorization header without a token."""
        client = PlatformClient(BASE_URL)

        assert "Authorization" not in client._session.headers

    def test_trailing_slash(self):
        """Test a trailing slash on the base URL is dropped."""
        client = PlatformClient(BASE_URL + "/")

        assert client._url("/api/progress") == f"{BASE_URL}/api/progress"

    def test_base_url_from_config(self, monkeypatch):
        """Test the base URL defaults to the configured API URL."""
        from ilaw.storyreader.config import reset_config

        monkeypatch.setenv("STORYREADER_API_URL", "http://configured.test")
        reset_config()
        try:
            assert PlatformClient().base_url == "http://configured.test"
        finally:
            reset_config()


class TestPlatformClientCalls:
    """Tests for the API calls."""

    @pytest.fixture
    def client(self):
        """Create a client with mocked session."""
        client = PlatformClient(BASE_URL, token="abc")
        client._session = MagicMock()
        return client

    def test_start_session(self, client):
        """Test starting a session posts the book id."""
        client._session.request.return_value = ok_response(
            {"success": True, "message": "Reading session started", "sessionId": 3}
        )

        result = client.start_session(5)

        assert result["sessionId"] == 3
        client._session.request.assert_called_once_with(
            "POST",
            f"{BASE_URL}/api/reading-sessions/start",
            json={"bookId": 5},
            params=None,
            timeout=10,
        )

    def test_end_session(self, client):
        """Test ending a session returns the server result."""
        client._session.request.return_value = ok_response(
            {"success": True, "message": "Reading session ended", "totalSeconds": 125}
        )

        assert client.end_session(5)["totalSeconds"] == 125

    def test_end_session_not_found(self, client):
        """Test a missing open session is reported, not raised."""
        client._session.request.return_value = error_response(
            404, {"success": False, "message": "No active reading session found"}
        )

        result = client.end_session(5)

        assert result == {"success": False, "message": "No active reading session found"}

    def test_post_progress_body(self, client):
        """Test the progress body uses camelCase keys."""
        client._session.request.return_value = ok_response({"success": True})

        client.post_progress(5, 38, current_page=3)

        kwargs = client._session.request.call_args.kwargs
        assert kwargs["json"] == {"bookId": 5, "percentComplete": 38, "currentPage": 3}

    def test_post_progress_minimal_body(self, client):
        """Test optional fields are left out."""
        client._session.request.return_value = ok_response({"success": True})

        client.post_progress(5, 50)

        kwargs = client._session.request.call_args.kwargs
        assert kwargs["json"] == {"bookId": 5, "percentComplete": 50}

    def test_complete_book(self, client):
        """Test marking a book complete hits the book endpoint."""
        client._session.request.return_value = ok_response({"success": True})

        client.complete_book(5)

        args = client._session.request.call_args.args
        assert args == ("POST", f"{BASE_URL}/api/books/5/complete")

    def test_get_progress(self, client):
        """Test progress rows are unwrapped."""
        client._session.request.return_value = ok_response(
            {"success": True, "progress": [{"bookId": 5, "percentComplete": 50}]}
        )

        rows = client.get_progress(student_id=9)

        assert rows == [{"bookId": 5, "percentComplete": 50}]
        assert client._session.request.call_args.kwargs["params"] == {"studentId": 9}

    def test_get_book(self, client):
        """Test book metadata is parsed."""
        client._session.request.return_value = ok_response(
            {
                "success": True,
                "book": {
                    "id": 5,
                    "title": "The Sun and the Moon",
                    "description": "A Filipino legend.",
                    "type": "storybook",
                    "pageCount": 8,
                },
            }
        )

        book = client.get_book(5)

        assert isinstance(book, BookResponse)
        assert book.page_count == 8

    def test_get_book_pages(self, client):
        """Test pages and their questions are parsed."""
        client._session.request.return_value = ok_response(
            {
                "success": True,
                "pages": [
                    {
                        "id": 1,
                        "bookId": 5,
                        "pageNumber": 1,
                        "content": "Long ago...",
                        "questions": [
                            {
                                "id": 10,
                                "pageId": 1,
                                "questionText": "Who were Bathala's children?",
                                "answerType": "multiple_choice",
                                "correctAnswer": "Apolaqui and Mayari",
                                "options": "Apolaqui and Mayari\nTala and Hanan",
                            }
                        ],
                    }
                ],
            }
        )

        pages = client.get_book_pages(5)

        assert len(pages) == 1
        assert isinstance(pages[0], PageResponse)
        assert pages[0].questions[0].id == 10

    def test_maintenance_status(self, client):
        """Test the maintenance flag is read."""
        client._session.request.return_value = ok_response(
            {"success": True, "maintenanceMode": True}
        )

        assert client.get_maintenance_status() is True


class TestPlatformClientErrors:
    """Tests for error handling."""

    @pytest.fixture
    def client(self):
        """Create a client with mocked session."""
        client = PlatformClient(BASE_URL, token="abc")
        client._session = MagicMock()
        return client

    def test_timeout(self, client):
        """Test timeouts raise PlatformError."""
        client._session.request.side_effect = requests.exceptions.Timeout()

        with pytest.raises(PlatformError, match="timed out"):
            client.start_session(5)

    def test_unauthorized(self, client):
        """Test 401 raises PlatformAuthError with the server message."""
        client._session.request.return_value = error_response(
            401, {"success": False, "message": "Token expired"}
        )

        with pytest.raises(PlatformAuthError, match="Token expired"):
            client.start_session(5)

    def test_not_found(self, client):
        """Test 404 raises PlatformNotFoundError."""
        client._session.request.return_value = error_response(
            404, {"success": False, "message": "Book not found"}
        )

        with pytest.raises(PlatformNotFoundError, match="Book not found"):
            client.get_book(999)

    def test_server_error_without_json(self, client):
        """Test other errors fall back to the status code."""
        client._session.request.return_value = error_response(500)

        with pytest.raises(PlatformError, match="HTTP error: 500"):
            client.post_progress(5, 50)

    def test_connection_error(self, client):
        """Test connection errors raise PlatformError."""
        client._session.request.side_effect = requests.exceptions.ConnectionError()

        with pytest.raises(PlatformError, match="Request failed"):
            client.complete_book(5)


class TestSendBeacon:
    """Tests for the fire-and-forget session end."""

    def test_beacon_carries_token(self):
        """Test the beacon posts the token in the body."""
        client = PlatformClient(BASE_URL, token="abc")

        with patch("ilaw.storyreader.api.platform.requests.post") as mock_post:
            thread = client.send_beacon(5)
            thread.join(timeout=5)

        mock_post.assert_called_once_with(
            f"{BASE_URL}/api/reading-sessions/end",
            json={"bookId": 5, "token": "abc"},
            timeout=10,
        )
        assert thread.daemon is True

    def test_beacon_failure_is_swallowed(self):
        """Test a failed beacon does not raise."""
        client = PlatformClient(BASE_URL, token="abc")

        with patch(
            "ilaw.storyreader.api.platform.requests.post",
            side_effect=requests.exceptions.ConnectionError(),
        ):
            thread = client.send_beacon(5)
            thread.join(timeout=5)

        assert not thread.is_alive()
