"""
certdb.kv.accessor
------------------
Accessor over a key-value document store.

Mutations of existing documents are versioned read-modify-write cycles:
read the document and its CAS token, change it in memory, then replace it
conditionally on the token. Losing the race restarts the cycle; after
`cas_retries` lost races the call fails with Conflict. No document is
ever written without either a CAS token or a create-only insert.
"""

from __future__ import annotations
from datetime import datetime
from typing import Any, Callable, List, Optional, Tuple
from certdb.accessor import Accessor
from certdb.config import DEFAULT_CAS_RETRIES
from certdb.errors import Conflict, DuplicateKey, NotFound
from certdb.kv.documents import (
    CERTIFICATE_TYPE,
    OCSP_TYPE,
    Record,
    document_key,
    matches,
    unwrap,
    wrap,
)
from certdb.kv.stores.base import CasMismatch, DocumentStore
from certdb.logger import get_logger
from certdb.models import CertificateRecord, OCSPRecord
from certdb.utils import to_millis, utcnow

log = get_logger("certdb.kv")

# mutate(current) -> new record; current is None when no matching record exists
Mutation = Callable[[Optional[Record]], Record]


class KVAccessor(Accessor):
    name = "kv"

    def __init__(
        self,
        store: DocumentStore,
        prefix: str = "",
        key_scheme: str = "composite",
        cas_retries: int = DEFAULT_CAS_RETRIES,
    ):
        self.store = store
        self.prefix = prefix
        self.key_scheme = key_scheme
        self.cas_retries = cas_retries

    def _key(self, doc_type: str, serial: str, aki: str) -> str:
        return document_key(doc_type, serial, aki, self.prefix, self.key_scheme)

    def _read(self, doc_type: str, serial: str, aki: str) -> Tuple[str, Optional[Record], Any]:
        """Return (key, record, cas); record is None when absent or keyed to another aki."""
        key = self._key(doc_type, serial, aki)
        found = self.store.get(key)
        if found is None:
            return key, None, None
        doc, cas = found
        record = unwrap(doc_type, doc, key)
        if not matches(record, serial, aki):
            log.debug(f"[KV] {key} holds aki={record.aki}, wanted aki={aki}")
            return key, None, cas
        return key, record, cas

    def _insert(self, doc_type: str, record: Record) -> None:
        key = self._key(doc_type, record.serial, record.aki)
        self.store.insert(key, wrap(doc_type, record))
        log.debug(f"[KV] inserted {key}")

    def _get(self, doc_type: str, serial: str, aki: str) -> List[Record]:
        _, record, _ = self._read(doc_type, serial, aki)
        return [record] if record is not None else []

    def _scan(self, doc_type: str) -> List[Record]:
        now_ms = to_millis(utcnow())
        docs = self.store.scan(doc_type, self.prefix, now_ms)
        records = [unwrap(doc_type, doc) for doc in docs]
        # the store filtered already; re-check against the decoded expiry
        return [r for r in records if to_millis(r.expiry) > now_ms]

    def _modify(self, doc_type: str, serial: str, aki: str, mutate: Mutation, create: bool = False) -> None:
        for attempt in range(1, self.cas_retries + 1):
            key, current, cas = self._read(doc_type, serial, aki)
            if current is None:
                if not create:
                    raise NotFound(f"no {doc_type} record for serial={serial} aki={aki}")
                if cas is not None:
                    # serial-keyed slot already owned by another aki
                    raise DuplicateKey(f"{key} is held by a record for another authority key")
            doc = wrap(doc_type, mutate(current))
            try:
                if current is None:
                    self.store.insert(key, doc)
                else:
                    self.store.replace(key, doc, cas)
            except (CasMismatch, DuplicateKey):
                log.warning(f"[KV] lost write race on {key} (attempt {attempt}/{self.cas_retries})")
                continue
            log.debug(f"[KV] updated {key}")
            return
        raise Conflict(f"{doc_type} {serial}/{aki} kept changing; gave up after {self.cas_retries} attempts")

    # certificates
    def insert_certificate(self, record: CertificateRecord) -> None:
        self._insert(CERTIFICATE_TYPE, record)

    def get_certificate(self, serial: str, aki: str) -> List[CertificateRecord]:
        return self._get(CERTIFICATE_TYPE, serial, aki)

    def get_unexpired_certificates(self) -> List[CertificateRecord]:
        return self._scan(CERTIFICATE_TYPE)

    def revoke_certificate(self, serial: str, aki: str, reason: int) -> None:
        self._modify(CERTIFICATE_TYPE, serial, aki, lambda cur: cur.revoked(reason))
        log.info(f"[KV] revoked certificate serial={serial} aki={aki} reason={reason}")

    # ocsp responses
    def insert_ocsp(self, record: OCSPRecord) -> None:
        self._insert(OCSP_TYPE, record)

    def get_ocsp(self, serial: str, aki: str) -> List[OCSPRecord]:
        return self._get(OCSP_TYPE, serial, aki)

    def get_unexpired_ocsps(self) -> List[OCSPRecord]:
        return self._scan(OCSP_TYPE)

    def update_ocsp(self, serial: str, aki: str, body: str, expiry: datetime) -> None:
        self._modify(OCSP_TYPE, serial, aki, lambda cur: OCSPRecord(serial, aki, body, expiry))

    def upsert_ocsp(self, serial: str, aki: str, body: str, expiry: datetime) -> None:
        self._modify(OCSP_TYPE, serial, aki, lambda cur: OCSPRecord(serial, aki, body, expiry), create=True)

    def close(self) -> None:
        self.store.close()
