"""
HTTP client for the TuneIn-style radio directory
"""

import logging
import threading
from typing import Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import RadioDirectorySettings
from .errors import ResolutionFailed

logger = logging.getLogger(__name__)


class RadioDirectoryClient:
    """Thin wrapper around the directory's OPML endpoints; responses are returned raw"""

    def __init__(self, settings: Optional[RadioDirectorySettings] = None,
                 session: Optional[requests.Session] = None):
        """
        Initialize the directory client.

        Args:
            settings: Directory settings (base URL, partner id, timeout)
            session: Pre-built session, mainly for tests
        """
        self.settings = settings or RadioDirectorySettings()
        self._session = session
        self._session_lock = threading.Lock()

    def _http_session(self) -> requests.Session:
        if self._session is None:
            with self._session_lock:
                if self._session is None:
                    session = requests.Session()
                    # one reconnect for dropped connections; no status-based retries
                    retry_cfg = Retry(
                        total=1,
                        connect=1,
                        read=0,
                        status=0,
                        backoff_factor=0.2,
                        allowed_methods=("GET",),
                        raise_on_status=False,
                    )
                    adapter = HTTPAdapter(pool_connections=4, pool_maxsize=8, max_retries=retry_cfg)
                    session.mount("http://", adapter)
                    session.mount("https://", adapter)
                    session.headers.update({"User-Agent": "SoundTouch-Cloud/1.0"})
                    self._session = session
        return self._session

    def _params(self, **extra: str) -> Dict[str, str]:
        params = {"partnerId": self.settings.partner_id, **extra}
        if self.settings.username:
            params["username"] = self.settings.username
        return params

    def _get(self, endpoint: str, params: Dict[str, str]) -> str:
        """
        GET an OPML endpoint and return the body.

        Raises:
            ResolutionFailed: Network error, timeout or non-2xx answer
        """
        url = f"{self.settings.base_url.rstrip('/')}/{endpoint}"
        logger.debug(f"GET {url} with params {params}")
        try:
            response = self._http_session().get(url, params=params, timeout=self.settings.timeout_s)
        except requests.exceptions.Timeout as e:
            logger.warning(f"Radio directory timed out on {endpoint}: {e}")
            raise ResolutionFailed(f"Radio directory timed out: {e}") from e
        except requests.exceptions.RequestException as e:
            logger.warning(f"Radio directory unreachable on {endpoint}: {e}")
            raise ResolutionFailed(f"Radio directory unreachable: {e}") from e

        if not 200 <= response.status_code < 300:
            logger.warning(f"Radio directory returned status {response.status_code} for {endpoint}")
            raise ResolutionFailed(f"Radio directory returned HTTP {response.status_code}")
        return response.text

    def search(self, query: str) -> str:
        logger.info(f"TuneIn search: {query}")
        return self._get("Search.ashx", self._params(query=query, formats=self.settings.formats))

    def lookup_station(self, station_id: str) -> str:
        """Tune a station id; the answer holds stream URLs or further ids"""
        logger.info(f"TuneIn station request: {station_id}")
        return self._get("Tune.ashx", self._params(id=station_id, formats=self.settings.formats))

    def browse(self, category: str = "local") -> str:
        logger.info(f"TuneIn browse: {category}")
        return self._get("Browse.ashx", self._params(c=category))
