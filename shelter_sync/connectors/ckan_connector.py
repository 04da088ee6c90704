"""
Toronto Open Data (CKAN) Connector

Fetches the Daily Shelter & Overnight Service Occupancy & Capacity dataset.

Flow:
  1. package_show -> first resource with datastore_active
  2. datastore_search paged by limit/offset until offset >= total

Every HTTP call retries transient failures with exponential backoff. Any
failure that survives the retries surfaces as UpstreamFetchError, which
aborts the sync before anything is persisted.
"""
import time
from typing import Any, Callable, Dict, Iterator, List, Optional

import requests

from shelter_sync.config import get_settings
from shelter_sync.services.exceptions import UpstreamFetchError
from shelter_sync.utils.helpers import utc_now
from shelter_sync.utils.logger import log
from shelter_sync.utils.retry import retry_sync

settings = get_settings()


class CKANConnector:
    """Connector for the CKAN datastore API"""

    # Retry configuration (can be overridden by subclasses)
    RETRY_BASE_DELAY = 2.0  # seconds
    RETRY_MAX_DELAY = 60.0  # seconds

    def __init__(
        self,
        base_url: Optional[str] = None,
        package_id: Optional[str] = None,
        page_size: Optional[int] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        http: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.name = "ckan"
        self.base_url = (base_url or settings.ckan_base_url).rstrip("/")
        self.package_id = package_id or settings.ckan_package_id
        self.page_size = page_size or settings.ckan_page_size
        self.timeout = timeout or settings.ckan_timeout_seconds
        self.http = http or requests.Session()
        self.last_sync = None
        self.sync_count = 0
        self.error_count = 0

        self._get = retry_sync(
            max_attempts=max_attempts or settings.ckan_max_attempts,
            base_delay=self.RETRY_BASE_DELAY,
            max_delay=self.RETRY_MAX_DELAY,
            sleep=sleep,
        )(self._get_once)

    def _get_once(self, action: str, params: Dict[str, Any]) -> Dict[str, Any]:
        response = self.http.get(f"{self.base_url}/{action}", params=params, timeout=self.timeout)
        response.raise_for_status()
        payload = response.json()
        if not payload.get("success"):
            raise UpstreamFetchError(f"CKAN {action} returned success=false: {payload.get('error')}")
        return payload["result"]

    def _call(self, action: str, **params) -> Dict[str, Any]:
        try:
            return self._get(action, params)
        except UpstreamFetchError:
            self.error_count += 1
            raise
        except (requests.RequestException, ValueError, KeyError) as e:
            self.error_count += 1
            raise UpstreamFetchError(f"CKAN {action} failed: {e}") from e

    def get_package(self) -> Dict[str, Any]:
        return self._call("package_show", id=self.package_id)

    def get_resource(self, package: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """First datastore-active resource of the package"""
        package = package or self.get_package()
        resources = [r for r in package.get("resources", []) if r.get("datastore_active")]
        if not resources:
            raise UpstreamFetchError(f"No active datastore resources found in package {self.package_id}")
        return resources[0]

    def fetch_dataset_metadata(self) -> Dict[str, Any]:
        """Dataset title, resource id, timestamps and available record count"""
        package = self.get_package()
        resource = self.get_resource(package)
        store = self._call("datastore_search", id=resource["id"], limit=1)
        return {
            "title": package.get("title"),
            "resource_id": resource["id"],
            "created": resource.get("created") or package.get("metadata_created"),
            "last_modified": resource.get("last_modified") or package.get("metadata_modified"),
            "total_records": store.get("total", 0),
            "resource_url": resource.get("url"),
        }

    def iter_records(self) -> Iterator[Dict[str, Any]]:
        """Yield every raw datastore record, page by page"""
        resource_id = self.get_resource()["id"]
        offset = 0
        fetched = 0

        while True:
            page = self._call("datastore_search", id=resource_id, limit=self.page_size, offset=offset)
            records = page.get("records", [])
            total = page.get("total", 0)

            for record in records:
                yield record
            fetched += len(records)
            offset += self.page_size

            log.info(f"Fetched {fetched} / {total} CKAN records...")
            if not records or offset >= total:
                break

    def fetch_all_records(self) -> List[Dict[str, Any]]:
        """Materialize the full record set; raises UpstreamFetchError on any failure"""
        start_time = time.time()
        records = list(self.iter_records())
        self.last_sync = utc_now()
        self.sync_count += 1
        log.info(f"CKAN fetch complete: {len(records)} records in {time.time() - start_time:.1f}s")
        return records

    def get_status(self) -> Dict[str, Any]:
        """Get connector status"""
        return {
            "name": self.name,
            "package_id": self.package_id,
            "last_sync": self.last_sync,
            "sync_count": self.sync_count,
            "error_count": self.error_count,
            "last_call": self._get.last_stats.to_dict() if self._get.last_stats else None,
        }
