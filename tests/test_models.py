import pytest
from datetime import datetime, timedelta, timezone

from certdb import CertificateRecord, OCSPRecord, STATUS_GOOD, STATUS_REVOKED


def test_certificate_roundtrip_uses_persisted_field_names():
    expiry = datetime(2030, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    cert = CertificateRecord(serial="A1", aki="K1", expiry=expiry, pem="pem", ca_label="primary")

    d = cert.to_dict()
    assert d["authority_key_identifier"] == "K1"
    assert d["expiry"] == "2030-01-02T03:04:05Z"
    assert "revoked_at" not in d

    assert CertificateRecord.from_dict(d) == cert


def test_naive_datetimes_are_treated_as_utc():
    cert = CertificateRecord(serial="A1", aki="K1", expiry=datetime(2030, 1, 1), pem="pem")
    assert cert.expiry == datetime(2030, 1, 1, tzinfo=timezone.utc)


def test_good_certificate_cannot_carry_revoked_at():
    with pytest.raises(ValueError):
        CertificateRecord(
            serial="A1", aki="K1", expiry=datetime.now(timezone.utc), pem="pem",
            revoked_at=datetime.now(timezone.utc),
        )


@pytest.mark.parametrize("kwargs", [
    {"serial": ""},
    {"aki": ""},
    {"status": "expired"},
    {"pem": None},
    {"pem": b"-----BEGIN CERTIFICATE-----"},
])
def test_invalid_certificate_fields(kwargs):
    base = {"serial": "A1", "aki": "K1", "expiry": datetime.now(timezone.utc), "pem": "pem"}
    base.update(kwargs)
    with pytest.raises(ValueError):
        CertificateRecord(**base)


def test_revoked_returns_revoked_copy():
    cert = CertificateRecord(serial="A1", aki="K1", expiry=datetime.now(timezone.utc), pem="pem")
    when = datetime.now(timezone.utc) + timedelta(seconds=5)

    revoked = cert.revoked(3, when)

    assert cert.status == STATUS_GOOD
    assert revoked.status == STATUS_REVOKED
    assert revoked.reason == 3
    assert revoked.revoked_at == when
    assert CertificateRecord.from_dict(revoked.to_dict()) == revoked


def test_ocsp_from_dict_rejects_missing_expiry():
    with pytest.raises(KeyError):
        OCSPRecord.from_dict({"serial": "A1", "authority_key_identifier": "K1", "body": "b"})


def test_zero_revoked_at_means_never_revoked():
    cert = CertificateRecord.from_dict({
        "serial": "A1",
        "authority_key_identifier": "K1",
        "status": "good",
        "expiry": "2030-01-01T00:00:00Z",
        "revoked_at": "0001-01-01T00:00:00Z",
        "pem": "pem",
    })
    assert cert.revoked_at is None


@pytest.mark.parametrize("body", [None, b"\x30\x82"])
def test_ocsp_body_must_be_a_string(body):
    with pytest.raises(ValueError):
        OCSPRecord(serial="A1", aki="K1", body=body, expiry=datetime.now(timezone.utc))
