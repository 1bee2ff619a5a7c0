"""
Sonarr/Radarr API integration for PlexPrune.
Fetches library snapshots and tags, and deletes series/movies.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from deletesync.config import ArrInstanceConfig
from deletesync.models import LibraryItem, MOVIE, SHOW

API_PATH = "/api/v3"
MAX_RETRIES = 3
BACKOFF_FACTOR = 0.5


def build_session(api_key: str) -> requests.Session:
    """Create a session that retries idempotent reads on transient errors."""
    session = requests.Session()
    retries = Retry(
        total=MAX_RETRIES,
        backoff_factor=BACKOFF_FACTOR,
        allowed_methods=frozenset({"GET"}),
        status_forcelist=(429, 500, 502, 503, 504),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retries)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({"X-Api-Key": api_key, "Accept": "application/json"})
    return session


def _external_guids(record: Dict[str, Any], primary: str) -> List[str]:
    """Build normalized GUIDs from the *Id fields Sonarr/Radarr report."""
    guids = []
    order = [primary] + [p for p in ("tvdb", "tmdb", "imdb") if p != primary]
    for provider in order:
        value = record.get(f"{provider}Id")
        if value in (None, "", 0):
            continue
        guids.append(f"{provider}:{str(value).strip().lower()}")
    return guids


class ArrService:
    """HTTP client for a single Sonarr or Radarr instance."""

    instance_type = "arr"

    def __init__(self, instance: ArrInstanceConfig, session: Optional[requests.Session] = None):
        self.instance = instance
        self.base_url = instance.base_url.rstrip('/')
        self.timeout = instance.timeout
        self.session = session or build_session(instance.api_key)

    @property
    def label(self) -> str:
        return f"[{self.instance_type.upper()}:{self.instance.name}]"

    def _url(self, *parts: str) -> str:
        joined = "/".join(str(p).strip("/") for p in parts if p != "")
        return f"{self.base_url}{API_PATH}/{joined}"

    def _request(self, method: str, *parts: str, **kwargs) -> Any:
        url = self._url(*parts)
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.RequestException as e:
            logging.error(f"{self.label} {method} {url} failed: {type(e).__name__}: {e}")
            raise ConnectionError(f"{self.instance_type} request failed ({self.instance.name}): {e}") from e
        if not response.text:
            return None
        return response.json()

    def get_tags(self) -> List[Dict[str, Any]]:
        """Return the instance's tags as [{'id': int, 'label': str}]."""
        return self._request("GET", "tag") or []

    def fetch_root_folders(self) -> List[Dict[str, Any]]:
        return self._request("GET", "rootfolder") or []


class SonarrService(ArrService):
    """Sonarr v3 client."""

    instance_type = "sonarr"

    def fetch_series(self) -> List[LibraryItem]:
        records = self._request("GET", "series") or []
        items = []
        for record in records:
            items.append(LibraryItem(
                content_type=SHOW,
                title=record.get("title", "Unknown"),
                guids=_external_guids(record, "tvdb"),
                instance_id=self.instance.id,
                arr_id=record.get("id"),
                tags=list(record.get("tags", [])),
                status="ended" if record.get("status") == "ended" else "continuing",
            ))
        logging.debug(f"{self.label} Fetched {len(items)} series")
        return items

    def delete_from_sonarr(self, item: LibraryItem, delete_files: bool) -> None:
        """Delete a series, optionally removing its files from disk."""
        if item.arr_id is None:
            raise ValueError(f"Series '{item.title}' has no Sonarr id")
        self._request(
            "DELETE", "series", str(item.arr_id),
            params={"deleteFiles": str(delete_files).lower(), "addImportListExclusion": "false"},
        )
        logging.debug(f"{self.label} Deleted series '{item.title}' (deleteFiles={delete_files})")


class RadarrService(ArrService):
    """Radarr v3 client."""

    instance_type = "radarr"

    def fetch_movies(self) -> List[LibraryItem]:
        records = self._request("GET", "movie") or []
        items = []
        for record in records:
            items.append(LibraryItem(
                content_type=MOVIE,
                title=record.get("title", "Unknown"),
                guids=_external_guids(record, "tmdb"),
                instance_id=self.instance.id,
                arr_id=record.get("id"),
                tags=list(record.get("tags", [])),
                status="available" if record.get("hasFile") else "unavailable",
            ))
        logging.debug(f"{self.label} Fetched {len(items)} movies")
        return items

    def delete_from_radarr(self, item: LibraryItem, delete_files: bool) -> None:
        """Delete a movie, optionally removing its files from disk."""
        if item.arr_id is None:
            raise ValueError(f"Movie '{item.title}' has no Radarr id")
        self._request(
            "DELETE", "movie", str(item.arr_id),
            params={"deleteFiles": str(delete_files).lower(), "addImportExclusion": "false"},
        )
        logging.debug(f"{self.label} Deleted movie '{item.title}' (deleteFiles={delete_files})")


class _ArrManager:
    """Holds one service per enabled instance and fans reads out across them."""

    service_class = ArrService

    def __init__(self, instances: List[ArrInstanceConfig]):
        self._services: Dict[int, ArrService] = {}
        for instance in instances:
            if not instance.enabled:
                logging.debug(f"Skipping disabled {self.service_class.instance_type} instance {instance.name}")
                continue
            self._services[instance.id] = self.service_class(instance)

    def _get_service(self, instance_id) -> Optional[ArrService]:
        return self._services.get(instance_id)

    def _fetch_all(self, fetch) -> List[LibraryItem]:
        if not self._services:
            return []
        items: List[LibraryItem] = []
        with ThreadPoolExecutor(max_workers=min(4, len(self._services))) as executor:
            # map() keeps instance order; the first failure propagates
            for result in executor.map(fetch, self._services.values()):
                items.extend(result)
        return items


class SonarrManager(_ArrManager):
    """All configured Sonarr instances."""

    service_class = SonarrService

    def fetch_all_series(self) -> List[LibraryItem]:
        return self._fetch_all(lambda service: service.fetch_series())

    def get_sonarr_service(self, instance_id) -> Optional[SonarrService]:
        return self._get_service(instance_id)


class RadarrManager(_ArrManager):
    """All configured Radarr instances."""

    service_class = RadarrService

    def fetch_all_movies(self) -> List[LibraryItem]:
        return self._fetch_all(lambda service: service.fetch_movies())

    def get_radarr_service(self, instance_id) -> Optional[RadarrService]:
        return self._get_service(instance_id)
