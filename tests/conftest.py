import pytest
from datetime import datetime, timedelta, timezone

from certdb import CertificateRecord, OCSPRecord, load_accessor


def make_cert(serial="A1", aki="K1", expires_in=timedelta(hours=1), **kw):
    return CertificateRecord(
        serial=serial,
        aki=aki,
        expiry=datetime.now(timezone.utc) + expires_in,
        pem=kw.pop("pem", f"-----BEGIN CERTIFICATE-----\n{serial}\n-----END CERTIFICATE-----\n"),
        **kw,
    )


def make_ocsp(serial="A1", aki="K1", body="good", expires_in=timedelta(minutes=10)):
    return OCSPRecord(serial=serial, aki=aki, body=body, expiry=datetime.now(timezone.utc) + expires_in)


@pytest.fixture
def sql_db(tmp_path):
    db = load_accessor({"engine": "sql", "driver": "sqlite3", "data_source": str(tmp_path / "certs.db")})
    yield db
    db.close()


@pytest.fixture
def kv_db():
    db = load_accessor({"engine": "kv", "uri": "memory://", "prefix": "test:"})
    yield db
    db.close()


@pytest.fixture(params=["sql", "kv"])
def accessor(request):
    """Every contract test runs against both backend strategies."""
    return request.getfixturevalue(f"{request.param}_db")
