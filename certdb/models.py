# certdb/models.py
from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Optional
from certdb.utils import as_utc, parse_rfc3339, to_rfc3339, utcnow

STATUS_GOOD = "good"
STATUS_REVOKED = "revoked"
STATUSES = (STATUS_GOOD, STATUS_REVOKED)


def _check_key(serial: str, aki: str) -> None:
    if not serial or not isinstance(serial, str):
        raise ValueError("serial must be a non-empty string")
    if not aki or not isinstance(aki, str):
        raise ValueError("aki must be a non-empty string")


@dataclass
class CertificateRecord:
    """
    Storage-level representation of an issued certificate.

    (serial, aki) is the natural key. The record is backend-agnostic; each
    accessor owns its own physical encoding.
    """
    serial: str
    aki: str
    expiry: datetime
    pem: str
    ca_label: str = ""
    status: str = STATUS_GOOD   # good | revoked
    reason: int = 0             # CRL reason code, only meaningful when revoked
    revoked_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        _check_key(self.serial, self.aki)
        if self.status not in STATUSES:
            raise ValueError(f"unknown certificate status: {self.status!r}")
        if not isinstance(self.pem, str):
            raise ValueError("pem must be a string")
        if not isinstance(self.expiry, datetime):
            raise ValueError("expiry must be a datetime")
        self.expiry = as_utc(self.expiry)
        if self.revoked_at is not None:
            if self.status == STATUS_GOOD:
                raise ValueError("a good certificate cannot carry revoked_at")
            self.revoked_at = as_utc(self.revoked_at)

    def revoked(self, reason: int, when: Optional[datetime] = None) -> "CertificateRecord":
        return replace(self, status=STATUS_REVOKED, reason=reason, revoked_at=when or utcnow())

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "serial": self.serial,
            "authority_key_identifier": self.aki,
            "ca_label": self.ca_label,
            "status": self.status,
            "reason": self.reason,
            "expiry": to_rfc3339(self.expiry),
            "pem": self.pem,
        }
        if self.revoked_at is not None:
            d["revoked_at"] = to_rfc3339(self.revoked_at)
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CertificateRecord":
        revoked_at = parse_rfc3339(data.get("revoked_at"))
        if revoked_at is not None and revoked_at.year == 1:
            # 0001-01-01T00:00:00Z is the zero time, i.e. never revoked
            revoked_at = None
        return cls(
            serial=data["serial"],
            aki=data["authority_key_identifier"],
            expiry=parse_rfc3339(data["expiry"]),
            pem=data.get("pem", ""),
            ca_label=data.get("ca_label") or "",
            status=data.get("status") or STATUS_GOOD,
            reason=int(data.get("reason") or 0),
            revoked_at=revoked_at,
        )


@dataclass
class OCSPRecord:
    """A cached OCSP response for the certificate keyed by (serial, aki)."""
    serial: str
    aki: str
    body: str
    expiry: datetime

    def __post_init__(self) -> None:
        _check_key(self.serial, self.aki)
        if not isinstance(self.body, str):
            raise ValueError("body must be a string")
        if not isinstance(self.expiry, datetime):
            raise ValueError("expiry must be a datetime")
        self.expiry = as_utc(self.expiry)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "serial": self.serial,
            "authority_key_identifier": self.aki,
            "body": self.body,
            "expiry": to_rfc3339(self.expiry),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OCSPRecord":
        return cls(
            serial=data["serial"],
            aki=data["authority_key_identifier"],
            body=data.get("body", ""),
            expiry=parse_rfc3339(data["expiry"]),
        )
