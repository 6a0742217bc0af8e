from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List
from sqlalchemy import and_, insert, select, update
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from certdb.accessor import Accessor
from certdb.errors import BackendUnavailable, CertDBError, CorruptRecord, DuplicateKey, NotFound
from certdb.logger import get_logger
from certdb.models import STATUS_REVOKED, CertificateRecord, OCSPRecord
from certdb.sql.schema import certificates, metadata, ocsp_responses
from certdb.utils import as_utc, naive_utc, utcnow

log = get_logger("certdb.sql")

# dialects with a native single-statement upsert
_ON_CONFLICT = {"sqlite": sqlite.insert, "postgresql": postgresql.insert}
_ON_DUPLICATE_KEY = ("mysql", "mariadb")


def _key_of(table, serial: str, aki: str):
    return and_(
        table.c.serial_number == serial,
        table.c.authority_key_identifier == aki,
    )


def _certificate_row(record: CertificateRecord) -> Dict[str, Any]:
    return {
        "serial_number": record.serial,
        "authority_key_identifier": record.aki,
        "ca_label": record.ca_label,
        "status": record.status,
        "reason": record.reason,
        "expiry": naive_utc(record.expiry),
        "revoked_at": naive_utc(record.revoked_at) if record.revoked_at else None,
        "pem": record.pem,
    }


def _ocsp_row(record: OCSPRecord) -> Dict[str, Any]:
    return {
        "serial_number": record.serial,
        "authority_key_identifier": record.aki,
        "body": record.body,
        "expiry": naive_utc(record.expiry),
    }


def _to_certificate(row) -> CertificateRecord:
    m = row._mapping
    try:
        return CertificateRecord(
            serial=m["serial_number"],
            aki=m["authority_key_identifier"],
            expiry=as_utc(m["expiry"]),
            pem=m["pem"],
            ca_label=m["ca_label"] or "",
            status=m["status"],
            reason=m["reason"] or 0,
            revoked_at=as_utc(m["revoked_at"]) if m["revoked_at"] else None,
        )
    except (TypeError, ValueError) as exc:
        raise CorruptRecord(f"certificate row {m['serial_number']!r} is malformed: {exc}") from exc


def _to_ocsp(row) -> OCSPRecord:
    m = row._mapping
    try:
        return OCSPRecord(
            serial=m["serial_number"],
            aki=m["authority_key_identifier"],
            body=m["body"],
            expiry=as_utc(m["expiry"]),
        )
    except (TypeError, ValueError) as exc:
        raise CorruptRecord(f"ocsp row {m['serial_number']!r} is malformed: {exc}") from exc


class SQLAccessor(Accessor):
    """
    Accessor over a relational database via SQLAlchemy Core.

    Every operation is one transaction; single-row UPDATEs are atomic, so
    concurrent writers to the same key are serialised by the database.
    """
    name = "sql"

    def __init__(self, engine: Engine, create_schema: bool = True):
        self.engine = engine
        if create_schema:
            self._init()

    def _init(self) -> None:
        try:
            metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            log.error(f"[SQL] schema creation failed: {exc}")
            raise BackendUnavailable("could not create certdb tables") from exc
        log.info(f"[SQL] schema ready on {self.engine.dialect.name}")

    @contextmanager
    def _transaction(self, what: str) -> Iterator[Connection]:
        try:
            with self.engine.begin() as conn:
                yield conn
        except CertDBError:
            raise
        except IntegrityError as exc:
            raise DuplicateKey(f"{what}: record already exists") from exc
        except SQLAlchemyError as exc:
            log.error(f"[SQL] {what} failed: {exc}")
            raise BackendUnavailable(f"{what} failed") from exc

    # certificates
    def insert_certificate(self, record: CertificateRecord) -> None:
        with self._transaction("insert certificate") as conn:
            conn.execute(insert(certificates).values(**_certificate_row(record)))
        log.debug(f"[SQL] inserted certificate serial={record.serial} aki={record.aki}")

    def get_certificate(self, serial: str, aki: str) -> List[CertificateRecord]:
        stmt = select(certificates).where(_key_of(certificates, serial, aki))
        with self._transaction("get certificate") as conn:
            rows = conn.execute(stmt).fetchall()
        return [_to_certificate(r) for r in rows]

    def get_unexpired_certificates(self) -> List[CertificateRecord]:
        stmt = select(certificates).where(certificates.c.expiry > naive_utc(utcnow()))
        with self._transaction("get unexpired certificates") as conn:
            rows = conn.execute(stmt).fetchall()
        return [_to_certificate(r) for r in rows]

    def revoke_certificate(self, serial: str, aki: str, reason: int) -> None:
        stmt = (
            update(certificates)
            .where(_key_of(certificates, serial, aki))
            .values(status=STATUS_REVOKED, reason=reason, revoked_at=naive_utc(utcnow()))
        )
        with self._transaction("revoke certificate") as conn:
            if conn.execute(stmt).rowcount == 0:
                raise NotFound(f"no certificate record for serial={serial} aki={aki}")
        log.info(f"[SQL] revoked certificate serial={serial} aki={aki} reason={reason}")

    # ocsp responses
    def insert_ocsp(self, record: OCSPRecord) -> None:
        with self._transaction("insert ocsp") as conn:
            conn.execute(insert(ocsp_responses).values(**_ocsp_row(record)))
        log.debug(f"[SQL] inserted ocsp serial={record.serial} aki={record.aki}")

    def get_ocsp(self, serial: str, aki: str) -> List[OCSPRecord]:
        stmt = select(ocsp_responses).where(_key_of(ocsp_responses, serial, aki))
        with self._transaction("get ocsp") as conn:
            rows = conn.execute(stmt).fetchall()
        return [_to_ocsp(r) for r in rows]

    def get_unexpired_ocsps(self) -> List[OCSPRecord]:
        stmt = select(ocsp_responses).where(ocsp_responses.c.expiry > naive_utc(utcnow()))
        with self._transaction("get unexpired ocsps") as conn:
            rows = conn.execute(stmt).fetchall()
        return [_to_ocsp(r) for r in rows]

    def update_ocsp(self, serial: str, aki: str, body: str, expiry: datetime) -> None:
        row = _ocsp_row(OCSPRecord(serial, aki, body, expiry))
        stmt = (
            update(ocsp_responses)
            .where(_key_of(ocsp_responses, serial, aki))
            .values(body=row["body"], expiry=row["expiry"])
        )
        with self._transaction("update ocsp") as conn:
            if conn.execute(stmt).rowcount == 0:
                raise NotFound(f"no ocsp record for serial={serial} aki={aki}")

    def upsert_ocsp(self, serial: str, aki: str, body: str, expiry: datetime) -> None:
        row = _ocsp_row(OCSPRecord(serial, aki, body, expiry))
        dialect = self.engine.dialect.name

        if dialect in _ON_CONFLICT:
            stmt = _ON_CONFLICT[dialect](ocsp_responses).values(**row)
            stmt = stmt.on_conflict_do_update(
                index_elements=[ocsp_responses.c.serial_number, ocsp_responses.c.authority_key_identifier],
                set_={"body": stmt.excluded.body, "expiry": stmt.excluded.expiry},
            )
        elif dialect in _ON_DUPLICATE_KEY:
            stmt = mysql.insert(ocsp_responses).values(**row)
            stmt = stmt.on_duplicate_key_update(body=stmt.inserted.body, expiry=stmt.inserted.expiry)
        else:
            self._upsert_fallback(row)
            return

        with self._transaction("upsert ocsp") as conn:
            conn.execute(stmt)

    def _upsert_fallback(self, row: Dict[str, Any]) -> None:
        # update-then-insert; a concurrent insert between the two turns the
        # second attempt into a plain update
        stmt = (
            update(ocsp_responses)
            .where(_key_of(ocsp_responses, row["serial_number"], row["authority_key_identifier"]))
            .values(body=row["body"], expiry=row["expiry"])
        )
        for attempt in (1, 2):
            try:
                with self._transaction("upsert ocsp") as conn:
                    if conn.execute(stmt).rowcount == 0:
                        conn.execute(insert(ocsp_responses).values(**row))
                return
            except DuplicateKey:
                if attempt == 2:
                    raise
                log.warning(f"[SQL] concurrent ocsp insert for serial={row['serial_number']}, retrying")

    def close(self) -> None:
        self.engine.dispose()
