import logging
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..base import EntitySource, LineageSource
from ..config import LineageConfig
from ..errors import UpstreamUnavailableError

logger = logging.getLogger(__name__)


class DomoConnector(EntitySource, LineageSource):
    """Connector for the vendor REST API with retries and token auth"""

    PAGE_SIZE = 50

    def __init__(self, config: LineageConfig, session: Optional[requests.Session] = None):
        client_config = config.get_client_config()
        if not client_config["base_url"]:
            raise ValueError("DOMO_API_HOST is required for the API connector")

        self.base_url = client_config["base_url"]
        self.timeout = client_config["timeout"]
        self._session = session or requests.Session()

        # Configure retry strategy
        retry_strategy = Retry(
            total=client_config["max_retries"],
            backoff_factor=0.2,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["HEAD", "GET", "OPTIONS"]
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self._session.mount("http://", adapter)
        self._session.mount("https://", adapter)

        headers = {"Accept": "application/json"}
        token = client_config["token"]
        if token:
            # Clean up token
            token = token.strip().strip("'").strip('"')
            headers["X-DOMO-Developer-Token"] = token
        self._session.headers.update(headers)

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        """GET a JSON document; None on 404"""
        url = f"{self.base_url}{path}"
        logger.debug("GET %s params=%s", url, params)
        try:
            response = self._session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise UpstreamUnavailableError(f"Request to {path} failed: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code in (401, 403):
            raise UpstreamUnavailableError(
                f"Request to {path} was rejected ({response.status_code}); check DOMO_API_TOKEN"
            )
        if response.status_code != 200:
            raise UpstreamUnavailableError(
                f"Request to {path} failed with status {response.status_code}: {response.text[:200]}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamUnavailableError(f"Response from {path} is not valid JSON") from e

    def _get_pages(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        records: List[Dict[str, Any]] = []
        offset = 0
        while True:
            page = self._get(path, {**(params or {}), "limit": self.PAGE_SIZE, "offset": offset})
            if not isinstance(page, list):
                break
            records.extend(r for r in page if isinstance(r, dict))
            if len(page) < self.PAGE_SIZE:
                break
            offset += self.PAGE_SIZE
        return records

    def get_dataset(self, dataset_id: str) -> Optional[Dict[str, Any]]:
        return self._get(f"/api/data/v3/datasources/{dataset_id}", {"includeAllDetails": "true"})

    def get_dataflow(self, dataflow_id: str) -> Optional[Dict[str, Any]]:
        """Fetch v2 and v1 payloads into one envelope; v1 is optional"""
        v2_error = None
        try:
            v2 = self._get(f"/api/dataprocessing/v2/dataflows/{dataflow_id}")
        except UpstreamUnavailableError as e:
            v2, v2_error = None, e

        try:
            v1 = self._get(f"/api/dataprocessing/v1/dataflows/{dataflow_id}")
        except UpstreamUnavailableError as e:
            logger.debug("v1 fetch failed for dataflow %s: %s", dataflow_id, e)
            v1 = None

        if v2 is None and v1 is None:
            if v2_error is not None:
                raise v2_error
            return None
        return {"v2": v2, "v1": v1}

    def get_card(self, card_id: str) -> Optional[Dict[str, Any]]:
        cards = self._get("/api/content/v1/cards", {"urns": card_id, "parts": "datasources"})
        if isinstance(cards, list) and cards:
            return cards[0]
        return None

    def list_datasets(self) -> List[Dict[str, Any]]:
        return self._get_pages("/api/data/v3/datasources")

    def list_dataflows(self) -> List[Dict[str, Any]]:
        return self._get_pages("/api/dataprocessing/v1/dataflows")

    def list_cards(self) -> List[Dict[str, Any]]:
        return self._get_pages("/api/content/v1/cards", {"parts": "datasources"})

    def get_lineage(self, kind: str, entity_id: str, traverse_up: bool,
                    traverse_down: bool, request_entities: Optional[str] = None) -> Optional[Dict[str, Any]]:
        params = {
            "traverseUp": str(bool(traverse_up)).lower(),
            "traverseDown": str(bool(traverse_down)).lower(),
        }
        if request_entities:
            params["requestEntities"] = request_entities
        return self._get(f"/api/data/v1/lineage/{kind}/{entity_id}", params)
