import json
from typing import Any, Mapping, Optional

import httpx

from dhcore.config import CoreConfig
from dhcore.internal.constants import PROJECTS_RESOURCE
from dhcore.internal.logging import get_logger
from dhcore.kernel.errors import RemoteError

logger = get_logger(__name__)


class CoreClient:
    """
    Thin synchronous client for the Core API.

    Documents live at `{base}/api/{version}/-/{project}/{resource}/{id}`;
    the project segment is omitted for the top-level projects collection.
    """

    def __init__(self, config: CoreConfig, http_client: Optional[httpx.Client] = None):
        self.config = config
        self._client = http_client or httpx.Client(timeout=config.timeout)
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    def build_url(
        self,
        project: Optional[str],
        resource: str,
        id: Optional[str] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> str:
        url = f"{self.config.base_url}/api/{self.config.api_version}"
        if resource != PROJECTS_RESOURCE and project:
            url += f"/-/{project}"
        url += f"/{resource}"
        if id:
            url += f"/{id}"

        query = {k: str(v) for k, v in (params or {}).items() if v not in (None, "")}
        if query:
            url = str(httpx.URL(url, params=query))
        return url

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _headers(self, with_body: bool) -> dict:
        headers = {"Accept": "application/json"}
        if with_body:
            headers["Content-Type"] = "application/json"
        if self.config.access_token:
            headers["Authorization"] = f"Bearer {self.config.access_token}"
        return headers

    def _auth(self) -> Optional[httpx.BasicAuth]:
        if self.config.basic_auth_username:
            return httpx.BasicAuth(self.config.basic_auth_username, self.config.basic_auth_password or "")
        return None

    def do(self, method: str, url: str, body: Any = None) -> Any:
        """
        Perform a request and return the decoded JSON body (None when empty).
        Raises RemoteError on transport failures and non-2xx responses.
        """
        content = json.dumps(body).encode("utf-8") if body is not None else None
        request_kwargs = {"headers": self._headers(content is not None), "content": content}
        auth = self._auth()
        if auth is not None:
            request_kwargs["auth"] = auth

        try:
            response = self._client.request(method, url, **request_kwargs)
        except httpx.HTTPError as exc:
            logger.error("Core request failed", method=method, url=url, error=str(exc))
            raise RemoteError(f"{method} {url} failed: {exc}") from exc

        if not response.is_success:
            message = _error_message(response)
            logger.warning("Core responded with error", method=method, url=url, status=response.status_code)
            raise RemoteError(message, status_code=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteError(f"invalid JSON from {method} {url}: {exc}", status_code=response.status_code) from exc

    def get(self, url: str) -> Any:
        return self.do("GET", url)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "CoreClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<CoreClient base_url={self.config.base_url} api={self.config.api_version}>"


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("message"), str) and payload["message"]:
        return payload["message"]
    return response.reason_phrase or f"HTTP {response.status_code}"
