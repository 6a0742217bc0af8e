# certdb/kv/stores/couchbase_store.py
from datetime import timedelta
from typing import Any, List, Optional, Tuple

from couchbase.auth import PasswordAuthenticator
from couchbase.cluster import Cluster
from couchbase.exceptions import (
    CasMismatchException,
    CouchbaseException,
    DocumentExistsException,
    DocumentNotFoundException,
)
from couchbase.n1ql import QueryScanConsistency
from couchbase.options import ClusterOptions, ClusterTimeoutOptions, QueryOptions, ReplaceOptions

from certdb.config import KVConfig
from certdb.errors import BackendUnavailable, CorruptRecord, DuplicateKey
from certdb.kv.stores.base import CasMismatch, Document, DocumentStore
from certdb.logger import get_logger

log = get_logger("certdb.kv.couchbase")

# Expiry is compared numerically; request_plus makes the index catch up
# with every mutation acknowledged before the query started.
UNEXPIRED_QUERY = (
    "SELECT b.* FROM `{bucket}` AS b "
    "WHERE b.type = $type AND STR_TO_MILLIS(b.record.expiry) > $now"
)
PREFIX_FILTER = " AND POSITION(META(b).id, $prefix) = 0"


class CouchbaseStore(DocumentStore):
    """
    Couchbase bucket as a document store.

    Uses the bucket's default collection for key-value access and SQL++
    (N1QL) for unexpired scans.
    """
    name = "couchbase"

    def __init__(self, cfg: KVConfig, cluster: Optional[Any] = None):
        self.bucket_name = cfg.bucket
        self.timeout = timedelta(seconds=cfg.timeout)

        if cluster is None:
            auth = PasswordAuthenticator(cfg.username or cfg.bucket, cfg.password)
            options = ClusterOptions(
                auth,
                timeout_options=ClusterTimeoutOptions(kv_timeout=self.timeout, query_timeout=self.timeout),
            )
            try:
                cluster = Cluster(cfg.uri, options)
            except CouchbaseException as exc:
                log.error(f"[COUCHBASE] connect failed uri={cfg.uri}: {exc}")
                raise BackendUnavailable(f"could not connect to couchbase at {cfg.uri}") from exc
            log.info(f"[COUCHBASE] connected uri={cfg.uri} bucket={cfg.bucket}")

        self.cluster = cluster
        try:
            self.collection = cluster.bucket(self.bucket_name).default_collection()
        except CouchbaseException as exc:
            raise BackendUnavailable(f"could not open bucket {self.bucket_name!r}") from exc

    def get(self, key: str) -> Optional[Tuple[Document, Any]]:
        try:
            res = self.collection.get(key)
        except DocumentNotFoundException:
            return None
        except CouchbaseException as exc:
            raise BackendUnavailable(f"couchbase get {key!r} failed") from exc
        try:
            doc = res.content_as[dict]
        except (TypeError, ValueError) as exc:
            raise CorruptRecord(f"document {key!r} is not a JSON object") from exc
        return doc, res.cas

    def insert(self, key: str, doc: Document) -> None:
        try:
            self.collection.insert(key, doc)
        except DocumentExistsException as exc:
            raise DuplicateKey(f"document {key!r} already exists") from exc
        except CouchbaseException as exc:
            raise BackendUnavailable(f"couchbase insert {key!r} failed") from exc

    def replace(self, key: str, doc: Document, cas: Any) -> None:
        try:
            self.collection.replace(key, doc, ReplaceOptions(cas=cas))
        except (CasMismatchException, DocumentNotFoundException) as exc:
            raise CasMismatch(key) from exc
        except CouchbaseException as exc:
            raise BackendUnavailable(f"couchbase replace {key!r} failed") from exc

    def upsert(self, key: str, doc: Document) -> None:
        try:
            self.collection.upsert(key, doc)
        except CouchbaseException as exc:
            raise BackendUnavailable(f"couchbase upsert {key!r} failed") from exc

    def scan(self, doc_type: str, prefix: str, now_ms: int) -> List[Document]:
        statement = UNEXPIRED_QUERY.format(bucket=self.bucket_name)
        params = {"type": doc_type, "now": now_ms}
        if prefix:
            statement += PREFIX_FILTER
            params["prefix"] = prefix

        options = QueryOptions(
            named_parameters=params,
            scan_consistency=QueryScanConsistency.REQUEST_PLUS,
            adhoc=False,
            timeout=self.timeout,
        )
        try:
            # rows are streamed; errors may surface while iterating
            return list(self.cluster.query(statement, options).rows())
        except CouchbaseException as exc:
            log.error(f"[COUCHBASE] unexpired scan failed type={doc_type}: {exc}")
            raise BackendUnavailable(f"couchbase query for {doc_type} failed") from exc

    def close(self) -> None:
        try:
            self.cluster.close()
        except CouchbaseException:
            log.exception("[COUCHBASE] close failed")
