"""
certdb.kv.documents
-------------------
Physical encoding of records in a key-value document store.

Each record is stored as one JSON document wrapping the record payload with
an explicit type discriminator:

    {"type": "certificate", "record": {"serial": ..., "authority_key_identifier": ..., ...}}

so scans can filter on `type` without relying on key naming.
"""

from __future__ import annotations
from typing import Any, Dict, Optional, Type, Union
from certdb.errors import CorruptRecord
from certdb.models import CertificateRecord, OCSPRecord

CERTIFICATE_TYPE = "certificate"
OCSP_TYPE = "ocsp"

Record = Union[CertificateRecord, OCSPRecord]

_RECORD_CLASSES: Dict[str, Type] = {
    CERTIFICATE_TYPE: CertificateRecord,
    OCSP_TYPE: OCSPRecord,
}


def document_key(doc_type: str, serial: str, aki: str, prefix: str = "", scheme: str = "composite") -> str:
    """
    composite: <prefix><type>:<serial>:<aki>
    serial:    <prefix><type>:<serial>   (legacy layout, aki lives only in the payload)
    """
    if scheme == "serial":
        return f"{prefix}{doc_type}:{serial}"
    return f"{prefix}{doc_type}:{serial}:{aki}"


def wrap(doc_type: str, record: Record) -> Dict[str, Any]:
    return {"type": doc_type, "record": record.to_dict()}


def unwrap(doc_type: str, doc: Any, key: str = "") -> Record:
    """Decode a wrapped document; anything malformed is a CorruptRecord."""
    if not isinstance(doc, dict):
        raise CorruptRecord(f"document {key!r} is not a JSON object")
    if doc.get("type") != doc_type:
        raise CorruptRecord(f"document {key!r} has type {doc.get('type')!r}, expected {doc_type!r}")
    payload = doc.get("record")
    if not isinstance(payload, dict):
        raise CorruptRecord(f"document {key!r} has no record payload")
    try:
        return _RECORD_CLASSES[doc_type].from_dict(payload)
    except (KeyError, TypeError, ValueError) as exc:
        raise CorruptRecord(f"document {key!r} could not be decoded: {exc}") from exc


def matches(record: Optional[Record], serial: str, aki: str) -> bool:
    return record is not None and record.serial == serial and record.aki == aki
