"""
certdb
======
Certificate and OCSP response metadata store.

Provides:
- CertificateRecord / OCSPRecord storage models
- The Accessor contract shared by every backend
- Key-value (Couchbase, Consul, in-memory) and relational (SQLAlchemy) accessors
- load_accessor(), which builds one accessor from a flat JSON configuration
"""

from certdb.accessor import Accessor
from certdb.errors import (
    BackendUnavailable,
    CertDBError,
    ConfigurationError,
    Conflict,
    CorruptRecord,
    DuplicateKey,
    NotFound,
)
from certdb.factory import load_accessor, load_accessor_from_file
from certdb.models import STATUS_GOOD, STATUS_REVOKED, CertificateRecord, OCSPRecord

__all__ = [
    "Accessor",
    "BackendUnavailable",
    "CertDBError",
    "CertificateRecord",
    "ConfigurationError",
    "Conflict",
    "CorruptRecord",
    "DuplicateKey",
    "NotFound",
    "OCSPRecord",
    "STATUS_GOOD",
    "STATUS_REVOKED",
    "load_accessor",
    "load_accessor_from_file",
]
