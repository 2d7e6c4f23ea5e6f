"""HTTP client for the remote tree API.

Reads the top-level node list and per-node child lists. Both endpoints
return JSON arrays of flat node records ``{id, parentId, label, status}``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote

import certifi
import requests
import urllib3
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base import BaseSource, SourceError

DEFAULT_CA_BUNDLE = certifi.where()

DEFAULT_BASE_URL = "https://localhost:7068/api/TreeNodes"
DEFAULT_CHILDREN_PATH = "{id}/children"


class TreeApiClient(BaseSource):
    """Client for the tree REST API.

    Uses a pooled requests session with retries for transient errors.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10,
        verify: bool = True,
        ca_bundle: Optional[str] = None,
        children_path: str = DEFAULT_CHILDREN_PATH,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.children_path = children_path
        self._verify = self._determine_verify(not verify, ca_bundle)
        self._session: Optional[requests.Session] = None

        if self._verify is False:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    @property
    def name(self) -> str:
        return "tree_api"

    @property
    def display_name(self) -> str:
        return "Tree API"

    def is_available(self) -> bool:
        """The API is available if the base URL answers without a server error."""
        try:
            resp = self._get_session().head(self.base_url, timeout=5)
            return resp.status_code < 500
        except requests.exceptions.RequestException:
            return False

    def fetch_top_level(self) -> List[Dict[str, Any]]:
        """Fetch the authoritative top-level node list.

        Raises:
            SourceError: On connection failure, non-success status or bad body.
        """
        return self._get_list(self.base_url)

    def fetch_children(self, node_id: Any) -> List[Dict[str, Any]]:
        """Fetch the child records of ``node_id``.

        Raises:
            SourceError: On connection failure, non-success status or bad body.
        """
        path = self.children_path.format(id=quote(str(node_id), safe=""))
        return self._get_list(f"{self.base_url}/{path.lstrip('/')}")

    def _determine_verify(self, insecure: bool, ca_bundle: Optional[str]) -> Union[bool, str]:
        """Determine SSL verification setting."""
        if insecure:
            return False
        if ca_bundle:
            return ca_bundle
        return DEFAULT_CA_BUNDLE

    def _get_session(self) -> requests.Session:
        """Get or create a requests session with retry configuration."""
        if self._session is None:
            session = requests.Session()
            retry = Retry(
                total=3,
                connect=3,
                read=3,
                backoff_factor=0.3,
                status_forcelist=(429, 500, 502, 503, 504),
                allowed_methods=("GET", "HEAD"),
            )
            adapter = HTTPAdapter(
                max_retries=retry,
                pool_connections=4,
                pool_maxsize=8,
            )
            session.mount("https://", adapter)
            session.mount("http://", adapter)
            session.verify = self._verify
            session.headers.update({"User-Agent": "navtree-sync/1.0", "Accept": "application/json"})
            self._session = session
        return self._session

    def _get_list(self, url: str) -> List[Dict[str, Any]]:
        try:
            resp = self._get_session().get(url, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except requests.exceptions.SSLError as e:
            raise SourceError(self.name, f"TLS/SSL error for {url}: certificate verify failed", e)
        except requests.exceptions.RequestException as e:
            raise SourceError(self.name, f"GET {url} failed: {e}", e)
        except ValueError as e:
            raise SourceError(self.name, f"GET {url} returned invalid JSON", e)

        if not isinstance(data, list):
            raise SourceError(self.name, f"GET {url} returned {type(data).__name__}, expected a list")
        return data

    def close(self) -> None:
        """Close the session and release resources."""
        if self._session is not None:
            self._session.close()
            self._session = None
