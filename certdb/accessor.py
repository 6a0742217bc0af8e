# certdb/accessor.py
from __future__ import annotations
from datetime import datetime
from typing import List
from certdb.models import CertificateRecord, OCSPRecord


class Accessor:
    """
    Contract every certificate / OCSP storage backend satisfies.

    Lookups return a list of zero or one records; absence is not an error.
    Mutations that need an existing record raise NotFound, inserts into an
    existing key raise DuplicateKey, and backend failures surface as
    BackendUnavailable. Implementations must be safe to share between
    threads for operations on distinct keys.
    """
    name: str = "base"

    # certificates
    def insert_certificate(self, record: CertificateRecord) -> None:
        raise NotImplementedError

    def get_certificate(self, serial: str, aki: str) -> List[CertificateRecord]:
        raise NotImplementedError

    def get_unexpired_certificates(self) -> List[CertificateRecord]:
        raise NotImplementedError

    def revoke_certificate(self, serial: str, aki: str, reason: int) -> None:
        """
        Mark the certificate revoked now with the given CRL reason code.
        Re-revoking overwrites the previous reason and time.
        """
        raise NotImplementedError

    # ocsp responses
    def insert_ocsp(self, record: OCSPRecord) -> None:
        raise NotImplementedError

    def get_ocsp(self, serial: str, aki: str) -> List[OCSPRecord]:
        raise NotImplementedError

    def get_unexpired_ocsps(self) -> List[OCSPRecord]:
        raise NotImplementedError

    def update_ocsp(self, serial: str, aki: str, body: str, expiry: datetime) -> None:
        raise NotImplementedError

    def upsert_ocsp(self, serial: str, aki: str, body: str, expiry: datetime) -> None:
        raise NotImplementedError

    def close(self) -> None:
        return

    def __enter__(self) -> "Accessor":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
