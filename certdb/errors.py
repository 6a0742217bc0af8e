from __future__ import annotations


class CertDBError(Exception):
    pass


class NotFound(CertDBError):
    """No record exists for the requested (serial, aki) key."""


class DuplicateKey(CertDBError):
    """A record with the same (serial, aki) key already exists."""


class Conflict(CertDBError):
    """
    A concurrent writer changed the record between read and conditional
    write, and the retry budget ran out. Callers may retry the operation.
    """


class ConfigurationError(CertDBError):
    pass


class BackendUnavailable(CertDBError):
    """Connection or transport failure talking to the underlying store."""


class CorruptRecord(BackendUnavailable):
    """A stored document could not be decoded into a record."""
