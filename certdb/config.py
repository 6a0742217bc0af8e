"""
certdb.config
-------------
Validated, immutable backend configuration.

The on-disk format is a flat JSON object naming an `engine` plus the keys
that engine needs, e.g.

    {"engine": "kv", "uri": "couchbase://db1", "bucket": "certs", "password": "..."}
    {"engine": "sql", "driver": "sqlite3", "data_source": "/var/lib/certdb/certs.db"}

Missing or malformed keys raise ConfigurationError naming the key.
"""

from __future__ import annotations
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlsplit
from certdb.errors import ConfigurationError

KV_ENGINES = ("kv", "couchbase", "consul")
SQL_ENGINES = ("sql",)
KEY_SCHEMES = ("composite", "serial")

DEFAULT_CAS_RETRIES = 3
DEFAULT_TIMEOUT = 10.0

# driver name -> SQLAlchemy dialect
_SQL_DIALECTS = {
    "sqlite3": "sqlite",
    "sqlite": "sqlite",
    "postgres": "postgresql",
    "postgresql": "postgresql",
    "pgx": "postgresql",
    "mysql": "mysql",
}


def load_config_file(path) -> Dict[str, Any]:
    if not path:
        raise ConfigurationError("invalid configuration path")
    try:
        body = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"could not read configuration file {path}") from exc
    try:
        data = json.loads(body)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"failed to parse configuration {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"configuration {path} must be a JSON object")
    return data


def _require(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None or value == "":
        raise ConfigurationError(f"missing required configuration option {key!r}")
    if not isinstance(value, str):
        raise ConfigurationError(f"configuration option {key!r} must be a string")
    return value


def _optional_str(data: Dict[str, Any], key: str, default: str = "") -> str:
    value = data.get(key, default)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ConfigurationError(f"configuration option {key!r} must be a string")
    return value


def _as_int(data: Dict[str, Any], key: str, default: int, minimum: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool):
        raise ConfigurationError(f"configuration option {key!r} must be an integer")
    try:
        value = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"configuration option {key!r} must be an integer") from exc
    if value < minimum:
        raise ConfigurationError(f"configuration option {key!r} must be >= {minimum}")
    return value


def _as_float(data: Dict[str, Any], key: str, default: float) -> float:
    value = data.get(key, default)
    try:
        value = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"configuration option {key!r} must be a number") from exc
    if value <= 0:
        raise ConfigurationError(f"configuration option {key!r} must be positive")
    return value


def _as_bool(data: Dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("1", "true", "yes", "0", "false", "no"):
        return value.lower() in ("1", "true", "yes")
    raise ConfigurationError(f"configuration option {key!r} must be a boolean")


def engine_of(data: Dict[str, Any]) -> str:
    return _require(data, "engine").lower()


@dataclass(frozen=True)
class KVConfig:
    engine: str
    uri: str
    bucket: str = ""
    username: str = ""
    password: str = field(default="", repr=False)
    prefix: str = ""
    token: Optional[str] = field(default=None, repr=False)
    key_scheme: str = "composite"
    cas_retries: int = DEFAULT_CAS_RETRIES
    timeout: float = DEFAULT_TIMEOUT

    @property
    def store(self) -> str:
        """Which document store the uri (or an explicit engine name) selects."""
        if self.engine in ("couchbase", "consul"):
            return self.engine
        scheme = urlsplit(self.uri).scheme.lower()
        if scheme in ("couchbase", "couchbases"):
            return "couchbase"
        if scheme in ("consul", "http", "https"):
            return "consul"
        if scheme == "memory":
            return "memory"
        raise ConfigurationError(f"unsupported kv uri scheme {scheme!r} in {self.uri!r}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KVConfig":
        engine = engine_of(data)
        if engine not in KV_ENGINES:
            raise ConfigurationError(f"not a key-value engine: {engine!r}")

        key_scheme = _optional_str(data, "key_scheme", "composite").lower()
        if key_scheme not in KEY_SCHEMES:
            raise ConfigurationError(f"unknown key_scheme {key_scheme!r}")

        cfg = cls(
            engine=engine,
            uri=_require(data, "uri"),
            bucket=_optional_str(data, "bucket"),
            username=_optional_str(data, "username"),
            password=_optional_str(data, "password"),
            prefix=_optional_str(data, "prefix"),
            token=_optional_str(data, "token") or None,
            key_scheme=key_scheme,
            cas_retries=_as_int(data, "cas_retries", DEFAULT_CAS_RETRIES, minimum=1),
            timeout=_as_float(data, "timeout", DEFAULT_TIMEOUT),
        )
        # resolves the store and rejects unknown uri schemes
        store = cfg.store
        if store == "couchbase" and not cfg.bucket:
            raise ConfigurationError("missing required configuration option 'bucket'")
        if store == "consul":
            # an empty prefix would scan every key in the agent
            if not cfg.prefix:
                raise ConfigurationError("missing required configuration option 'prefix'")
            try:
                urlsplit(cfg.uri).port
            except ValueError as exc:
                raise ConfigurationError(f"invalid port in configuration option 'uri': {cfg.uri!r}") from exc
        return cfg


@dataclass(frozen=True)
class SQLConfig:
    driver: str
    data_source: str = field(repr=False)
    create_schema: bool = True
    echo: bool = False

    @property
    def dialect(self) -> str:
        return _SQL_DIALECTS.get(self.driver.lower(), self.driver.lower())

    @property
    def url(self) -> str:
        """SQLAlchemy URL for driver + data_source."""
        dialect = self.dialect
        source = self.data_source
        if dialect == "sqlite":
            if source == ":memory:":
                return "sqlite://"
            if source.startswith("sqlite:"):
                return source
            if source.startswith("file:"):
                source = source[len("file:"):].split("?", 1)[0]
            return f"sqlite:///{source}"
        if "://" in source:
            _, rest = source.split("://", 1)
            if dialect in ("postgresql", "mysql"):
                scheme = urlsplit(source).scheme
                # keep an explicit DBAPI choice such as postgresql+psycopg
                if "+" in scheme and scheme.split("+", 1)[0] == dialect:
                    return source
                return f"{dialect}://{rest}"
            return source
        if dialect == "postgresql":
            # libpq keyword DSN, handed to the DBAPI as-is
            return "postgresql://"
        raise ConfigurationError(
            f"data_source for driver {self.driver!r} must be a URL"
        )

    @property
    def connect_args(self) -> Dict[str, Any]:
        if self.dialect == "postgresql" and "://" not in self.data_source:
            return {"dsn": self.data_source}
        if self.dialect == "sqlite":
            return {"check_same_thread": False}
        return {}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SQLConfig":
        engine = engine_of(data)
        if engine not in SQL_ENGINES:
            raise ConfigurationError(f"not a relational engine: {engine!r}")
        cfg = cls(
            driver=_require(data, "driver"),
            data_source=_require(data, "data_source"),
            create_schema=_as_bool(data, "create_schema", True),
            echo=_as_bool(data, "echo", False),
        )
        cfg.url  # validates data_source against the driver
        return cfg
