import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import requests
from requests.adapters import HTTPAdapter


@dataclass
class MediaRequest:
    id: int
    status: int

    @staticmethod
    def from_dict(data: dict) -> "MediaRequest":
        return MediaRequest(id=data.get("id"), status=data.get("status"))


def build_session() -> requests.Session:
    """Session with pooled connections and retries disabled (one attempt per call)."""
    sess = requests.Session()
    adapter = HTTPAdapter(max_retries=0, pool_connections=100, pool_maxsize=100)
    sess.mount("http://", adapter)
    sess.mount("https://", adapter)
    return sess


class OverseerrClient:
    """Client for the Overseerr endpoints used to route and approve requests."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") + "/api/v1"
        self.api_key = api_key
        self.session = session or build_session()
        self.timeout = timeout

    def _request(self, method: str, endpoint: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{endpoint}"
        headers = kwargs.pop("headers", {})
        headers.setdefault("accept", "application/json")
        headers.setdefault("X-Api-Key", self.api_key)
        if method in {"post", "put", "patch"}:
            headers.setdefault("Content-Type", "application/json")
        try:
            response = self.session.request(
                method, url, headers=headers, timeout=self.timeout, **kwargs
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            logging.error(
                "Overseerr API error during %s %s: %s", method.upper(), url, exc
            )
            raise
        return response

    def get_media(self, media_type: str, tmdb_id: Union[str, int]) -> Dict[str, Any]:
        resp = self._request(
            "get", f"/{media_type}/{tmdb_id}", params={"language": "en"}
        )
        return resp.json()

    def update_request(self, request_id: int, payload: dict) -> MediaRequest:
        resp = self._request("put", f"/request/{request_id}", json=payload)
        return MediaRequest.from_dict(resp.json() if resp.content else {})

    def approve_request(self, request_id: int) -> MediaRequest:
        resp = self._request("post", f"/request/{request_id}/approve")
        return MediaRequest.from_dict(resp.json() if resp.content else {})
