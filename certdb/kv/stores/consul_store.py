# certdb/kv/stores/consul_store.py
import json
from typing import Any, List, Optional, Tuple
from urllib.parse import urlsplit

import consul
import requests

from certdb.config import KVConfig
from certdb.errors import BackendUnavailable, CorruptRecord, DuplicateKey
from certdb.kv.stores.base import CasMismatch, Document, DocumentStore, unexpired
from certdb.logger import get_logger

log = get_logger("certdb.kv.consul")

CLIENT_ERRORS = (consul.ConsulException, requests.exceptions.RequestException)


def _client_from_uri(cfg: KVConfig):
    parts = urlsplit(cfg.uri)
    scheme = "https" if parts.scheme == "https" else "http"
    return consul.Consul(
        host=parts.hostname or "127.0.0.1",
        port=parts.port or 8500,
        scheme=scheme,
        token=cfg.token,
        consistency="consistent",
    )


class ConsulStore(DocumentStore):
    """
    Consul KV as a document store.

    The CAS token is the key's ModifyIndex; a put with cas=0 only succeeds
    when the key does not exist yet. Consul has no query language, so
    unexpired scans read the key prefix recursively and filter locally.
    """
    name = "consul"

    def __init__(self, cfg: KVConfig, client: Optional[Any] = None):
        self.uri = cfg.uri
        self.client = client if client is not None else _client_from_uri(cfg)
        log.info(f"[CONSUL] using agent at {cfg.uri}")

    def _decode(self, key: str, value: Optional[bytes]) -> Document:
        if value is None:
            raise CorruptRecord(f"document {key!r} is empty")
        try:
            doc = json.loads(value)
        except ValueError as exc:
            raise CorruptRecord(f"document {key!r} is not valid JSON") from exc
        if not isinstance(doc, dict):
            raise CorruptRecord(f"document {key!r} is not a JSON object")
        return doc

    def _put(self, key: str, doc: Document, **kwargs) -> bool:
        try:
            return bool(self.client.kv.put(key, json.dumps(doc), **kwargs))
        except CLIENT_ERRORS as exc:
            log.error(f"[CONSUL] put {key} failed: {exc}")
            raise BackendUnavailable(f"consul put {key!r} failed") from exc

    def get(self, key: str) -> Optional[Tuple[Document, Any]]:
        try:
            _, item = self.client.kv.get(key, consistency="consistent")
        except CLIENT_ERRORS as exc:
            log.error(f"[CONSUL] get {key} failed: {exc}")
            raise BackendUnavailable(f"consul get {key!r} failed") from exc
        if item is None:
            return None
        return self._decode(key, item.get("Value")), item["ModifyIndex"]

    def insert(self, key: str, doc: Document) -> None:
        if not self._put(key, doc, cas=0):
            raise DuplicateKey(f"document {key!r} already exists")

    def replace(self, key: str, doc: Document, cas: Any) -> None:
        if not self._put(key, doc, cas=cas):
            raise CasMismatch(key)

    def upsert(self, key: str, doc: Document) -> None:
        self._put(key, doc)

    def scan(self, doc_type: str, prefix: str, now_ms: int) -> List[Document]:
        try:
            _, items = self.client.kv.get(prefix, recurse=True, consistency="consistent")
        except CLIENT_ERRORS as exc:
            log.error(f"[CONSUL] scan {prefix} failed: {exc}")
            raise BackendUnavailable(f"consul scan of {prefix!r} failed") from exc
        out = []
        for item in items or []:
            key = item["Key"]
            if item.get("Value") is None:
                # folder markers carry no value
                continue
            doc = self._decode(key, item["Value"])
            if unexpired(doc, doc_type, now_ms, key):
                out.append(doc)
        return out
