"""Client for the reading platform REST API.

Used by the reader to open and close sessions, post progress, mark books
complete, and fetch pages. All calls carry a Bearer token.
"""

import logging
import threading
from typing import Any, Optional

import requests

from ..db.schemas import BookResponse, PageResponse

logger = logging.getLogger(__name__)


class PlatformError(Exception):
    """Base exception for platform API errors."""

    pass


class PlatformAuthError(PlatformError):
    """Raised when the token is missing, expired or invalid."""

    pass


class PlatformNotFoundError(PlatformError):
    """Raised when the requested resource does not exist."""

    pass


class PlatformClient:
    """Client for the platform reading API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: int = 10,
    ):
        """Initialize client.

        Args:
            base_url: API root, e.g. http://localhost:8000 (default from config)
            token: JWT sent as a Bearer token
            timeout: Request timeout in seconds
        """
        if base_url is None:
            from ..config import get_config

            base_url = get_config().api_url
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": "StoryReader/1.0"})
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return f"HTTP error: {response.status_code}"
        if isinstance(body, dict) and body.get("message"):
            return body["message"]
        return f"HTTP error: {response.status_code}"

    def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Any:
        """Make a request with error handling."""
        try:
            response = self._session.request(
                method,
                self._url(path),
                json=json,
                params=params,
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except requests.exceptions.Timeout:
            raise PlatformError("Request timed out")
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code
            message = self._error_message(e.response)
            if status == 401:
                raise PlatformAuthError(message)
            if status == 404:
                raise PlatformNotFoundError(message)
            raise PlatformError(message)
        except requests.exceptions.RequestException as e:
            raise PlatformError(f"Request failed: {e}")

    # ========================================================================
    # Reading Sessions
    # ========================================================================

    def start_session(self, book_id: int) -> dict:
        """Open (or re-use) a reading session for a book."""
        return self._request("POST", "/api/reading-sessions/start", json={"bookId": book_id})

    def end_session(self, book_id: int) -> dict:
        """Close the open reading session for a book.

        A missing open session is reported as ``{"success": False, ...}``
        instead of raising.
        """
        try:
            return self._request("POST", "/api/reading-sessions/end", json={"bookId": book_id})
        except PlatformNotFoundError as e:
            return {"success": False, "message": str(e)}

    def send_beacon(self, book_id: int) -> threading.Thread:
        """End a session without waiting for the result.

        The request runs on a daemon thread and any failure is only logged.
        The token travels in the body since a beacon cannot set headers.
        """
        payload = {"bookId": book_id, "token": self.token}
        url = self._url("/api/reading-sessions/end")

        def _send() -> None:
            try:
                requests.post(url, json=payload, timeout=self.timeout)
            except requests.exceptions.RequestException as e:
                logger.warning("Session-end beacon for book %s failed: %s", book_id, e)

        thread = threading.Thread(target=_send, name=f"beacon-{book_id}", daemon=True)
        thread.start()
        return thread

    # ========================================================================
    # Progress
    # ========================================================================

    def post_progress(
        self,
        book_id: int,
        percent_complete: float,
        current_page: Optional[int] = None,
        user_id: Optional[int] = None,
    ) -> dict:
        """Post the reader's current percent for a book."""
        body: dict[str, Any] = {"bookId": book_id, "percentComplete": percent_complete}
        if current_page is not None:
            body["currentPage"] = current_page
        if user_id is not None:
            body["userId"] = user_id
        return self._request("POST", "/api/progress", json=body)

    def complete_book(self, book_id: int) -> dict:
        """Mark a book as completed for the caller."""
        return self._request("POST", f"/api/books/{book_id}/complete", json={})

    def get_progress(self, student_id: Optional[int] = None) -> list[dict]:
        """Get progress rows visible to the caller."""
        params = {"studentId": student_id} if student_id is not None else None
        data = self._request("GET", "/api/progress", params=params)
        return data.get("progress", [])

    # ========================================================================
    # Books
    # ========================================================================

    def get_book(self, book_id: int) -> BookResponse:
        """Get book metadata."""
        data = self._request("GET", f"/api/books/{book_id}")
        return BookResponse.model_validate(data["book"])

    def get_book_pages(self, book_id: int) -> list[PageResponse]:
        """Get a book's pages with their questions, in reading order."""
        data = self._request("GET", f"/api/books/{book_id}/pages")
        return [PageResponse.model_validate(page) for page in data.get("pages", [])]

    # ========================================================================
    # System
    # ========================================================================

    def get_maintenance_status(self) -> bool:
        """Check whether the platform is in maintenance mode."""
        data = self._request("GET", "/api/system/maintenance-status")
        return bool(data.get("maintenanceMode", False))
