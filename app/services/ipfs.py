import json
import logging
from typing import Any, Dict, Optional

import requests

from app.core.config import Settings
from app.core.exceptions import LedgerError

logger = logging.getLogger(__name__)


class IpfsClient:
    """Minimal IPFS HTTP API client (/api/v0/add) for NFT images and metadata."""

    def __init__(self, settings: Settings, http: Optional[requests.Session] = None):
        self.settings = settings
        self.http = http or requests.Session()

    def add_bytes(self, data: bytes, filename: str = "file") -> str:
        url = self.settings.IPFS_API_URL.rstrip("/") + "/api/v0/add"
        try:
            response = self.http.post(url, files={"file": (filename, data)}, timeout=30)
            response.raise_for_status()
            return response.json()["Hash"]
        except (requests.RequestException, KeyError, ValueError) as e:
            raise LedgerError(f"ipfs upload failed: {e}") from e

    def add_json(self, payload: Dict[str, Any]) -> str:
        return self.add_bytes(json.dumps(payload).encode("utf-8"), filename="metadata.json")

    def url_for(self, content_hash: str) -> str:
        return self.settings.IPFS_GATEWAY_URL.rstrip("/") + "/" + content_hash
