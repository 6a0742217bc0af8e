# certdb/sql/schema.py
from sqlalchemy import Column, DateTime, Integer, MetaData, PrimaryKeyConstraint, String, Table, Text

metadata = MetaData()

# Timestamps are stored as naive UTC.
certificates = Table(
    "certificates",
    metadata,
    Column("serial_number", String(128), nullable=False),
    Column("authority_key_identifier", String(128), nullable=False),
    Column("ca_label", String(128), nullable=True),
    Column("status", String(128), nullable=False, default="good"),
    Column("reason", Integer, nullable=False, default=0),
    Column("expiry", DateTime, nullable=False, index=True),
    Column("revoked_at", DateTime, nullable=True),
    Column("pem", Text, nullable=False),
    PrimaryKeyConstraint("serial_number", "authority_key_identifier"),
)

ocsp_responses = Table(
    "ocsp_responses",
    metadata,
    Column("serial_number", String(128), nullable=False),
    Column("authority_key_identifier", String(128), nullable=False),
    Column("body", Text, nullable=False),
    Column("expiry", DateTime, nullable=False, index=True),
    PrimaryKeyConstraint("serial_number", "authority_key_identifier"),
)
