import threading
from pathlib import PurePosixPath
from typing import Any
from urllib.parse import quote

import requests
from pydantic import ValidationError

from ..config import Config
from ..sync.errors import RemoteDataError, TransportError
from ..sync.models import ChangeSet, Operation

SYNC_PATH = "/api/documents/sync"
UPLOAD_PATH = "/api/documents/{document_id}/images/upload"
TOKEN_PATH = "/api/auth/sync-token"


class SyncClient:
    """HTTP implementation of the Remote Gateway.

    Talks JSON to the document store's sync API with a Bearer sync token.
    Every failure surfaces as ``TransportError`` (unreachable, non-2xx) or
    ``RemoteDataError`` (undecodable body), so callers never see
    ``requests`` exceptions.
    """

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.base_url = config.server_url.rstrip("/")

    @property
    def session(self) -> requests.Session:
        """The current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        if self.config.auth_token:
            session.headers["Authorization"] = f"Bearer {self.config.auth_token}"
        session.verify = not self.config.insecure
        return session

    @property
    def _timeout(self) -> tuple[float, float]:
        return (10, self.config.timeout_seconds)

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """
        Send a request to the sync API and return the successful response.
        """
        url = f"{self.base_url}{path}"
        try:
            response = self._get_session().request(
                method, url, timeout=self._timeout, **kwargs
            )
        except requests.RequestException as exc:
            raise TransportError(f"{method} {path}: {exc}") from exc
        self._raise_for_status(response, f"{method} {path}")
        return response

    @staticmethod
    def _raise_for_status(response: requests.Response, what: str) -> None:
        if not 200 <= response.status_code < 300:
            raise TransportError(
                f"{what} {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )

    @staticmethod
    def _json(response: requests.Response, what: str) -> dict:
        try:
            body = response.json()
        except ValueError as exc:
            raise RemoteDataError(f"{what}: response is not JSON") from exc
        if not isinstance(body, dict):
            raise RemoteDataError(f"{what}: expected a JSON object")
        return body

    def fetch_changes(self, cursor: str) -> ChangeSet:
        """
        GET the folders and documents changed since *cursor*.
        """
        params = {"lastSyncAt": cursor} if cursor else None
        response = self._request("GET", SYNC_PATH, params=params)
        body = self._json(response, "sync GET")
        try:
            return ChangeSet.model_validate(body)
        except ValidationError as exc:
            raise RemoteDataError(f"sync GET: malformed payload: {exc}") from exc

    def apply_operations(self, operations: list[Operation]) -> str:
        """
        POST a batch of operations; return the server's new cursor.
        """
        payload = {"operations": [op.to_wire() for op in operations]}
        response = self._request("POST", SYNC_PATH, json=payload)
        body = self._json(response, "sync POST")
        cursor = body.get("lastSyncAt")
        if not isinstance(cursor, str):
            raise RemoteDataError("sync POST: response has no lastSyncAt")
        return cursor

    def upload_blob(self, owner_id: str, filename: str, data: bytes) -> str:
        """
        Upload an image for document *owner_id*; return its blob URL.
        """
        path = UPLOAD_PATH.format(document_id=quote(owner_id, safe=""))
        files = {"file": (PurePosixPath(filename).name, data)}
        response = self._request("POST", path, files=files)
        body = self._json(response, "image upload")
        url = body.get("url")
        if not isinstance(url, str) or not url:
            raise RemoteDataError("image upload: response has no url")
        return url

    def download_blob(self, url: str) -> bytes:
        """
        GET the bytes of a public blob URL (no credentials are sent).
        """
        try:
            response = requests.get(url, timeout=self._timeout)
        except requests.RequestException as exc:
            raise TransportError(f"blob GET {url}: {exc}") from exc
        self._raise_for_status(response, f"blob GET {url}")
        return response.content

    def fetch_sync_token(self, email: str, password: str) -> str:
        """
        Exchange account credentials for a sync token.

        Raises:
            ValueError: If email or password is empty.
        """
        if not email.strip() or not password:
            raise ValueError("Email and password are required")
        response = self._request(
            "POST",
            TOKEN_PATH,
            json={"email": email.strip(), "password": password},
        )
        token = self._json(response, "sync token").get("token")
        if not isinstance(token, str) or not token:
            raise RemoteDataError("sync token: response has no token")
        return token
