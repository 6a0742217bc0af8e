import json
import pytest

from certdb import ConfigurationError, load_accessor, load_accessor_from_file
from certdb.config import KVConfig, SQLConfig
from certdb.kv import KVAccessor, MemoryStore
from certdb.sql import SQLAccessor


def test_factory_modes(tmp_path):
    """load_accessor returns the accessor the engine names."""
    kv = load_accessor({"engine": "kv", "uri": "memory://"})
    assert isinstance(kv, KVAccessor)
    assert isinstance(kv.store, MemoryStore)

    sql = load_accessor({"engine": "sql", "driver": "sqlite3", "data_source": str(tmp_path / "a.db")})
    assert isinstance(sql, SQLAccessor)


def test_kv_options_reach_the_accessor():
    db = load_accessor({
        "engine": "kv", "uri": "memory://", "prefix": "ca1:",
        "key_scheme": "serial", "cas_retries": 7,
    })
    assert (db.prefix, db.key_scheme, db.cas_retries) == ("ca1:", "serial", 7)


@pytest.mark.parametrize("config", [
    {},
    {"engine": "mongo"},
    {"engine": "kv"},
    {"engine": "kv", "uri": "redis://localhost"},
    {"engine": "kv", "uri": "couchbase://localhost"},
    {"engine": "kv", "uri": "memory://", "key_scheme": "hashed"},
    {"engine": "kv", "uri": "memory://", "cas_retries": 0},
    {"engine": "kv", "uri": "memory://", "cas_retries": "many"},
    {"engine": "kv", "uri": 42},
    {"engine": "consul", "uri": "http://agent:8500"},
    {"engine": "kv", "uri": "consul://agent:8500", "prefix": ""},
    {"engine": "consul", "uri": "http://agent:abc", "prefix": "certdb/"},
    {"engine": "kv", "uri": "memory://", "token": 1234},
    {"engine": "sql", "driver": "sqlite3"},
    {"engine": "sql", "data_source": "x.db"},
    {"engine": "sql", "driver": "mysql", "data_source": "user:pw@tcp(db)/certs"},
    {"engine": "sql", "driver": "sqlite3", "data_source": "x.db", "create_schema": "maybe"},
])
def test_bad_configuration_raises(config):
    with pytest.raises(ConfigurationError):
        load_accessor(config)


def test_unknown_sql_driver_is_configuration_error():
    with pytest.raises(ConfigurationError):
        load_accessor({"engine": "sql", "driver": "nosuchdb", "data_source": "nosuchdb://host/db"})


def test_load_from_file(tmp_path):
    path = tmp_path / "db-config.json"
    path.write_text(json.dumps({"engine": "sql", "driver": "sqlite3", "data_source": str(tmp_path / "f.db")}))
    assert isinstance(load_accessor_from_file(path), SQLAccessor)


@pytest.mark.parametrize("body", ["", "not json", "[1, 2]"])
def test_unreadable_file(tmp_path, body):
    path = tmp_path / "db-config.json"
    path.write_text(body)
    with pytest.raises(ConfigurationError):
        load_accessor_from_file(path)


def test_missing_file(tmp_path):
    with pytest.raises(ConfigurationError):
        load_accessor_from_file(tmp_path / "absent.json")


def test_env_config(tmp_path, monkeypatch):
    path = tmp_path / "db-config.json"
    path.write_text(json.dumps({"engine": "kv", "uri": "memory://"}))

    monkeypatch.setenv("CERTDB_CONFIG", str(path))
    assert isinstance(load_accessor(), KVAccessor)

    monkeypatch.delenv("CERTDB_CONFIG")
    with pytest.raises(ConfigurationError):
        load_accessor()


def test_kv_store_selection():
    def store(**kw):
        return KVConfig.from_dict({"engine": "kv", **kw}).store

    assert store(uri="couchbase://db1", bucket="certs") == "couchbase"
    assert store(uri="couchbases://db1", bucket="certs") == "couchbase"
    assert store(uri="consul://agent:8500", prefix="certdb/") == "consul"
    assert store(uri="http://agent:8500", prefix="certdb/") == "consul"
    assert store(uri="memory://") == "memory"
    assert KVConfig.from_dict({"engine": "consul", "uri": "memory://", "prefix": "p/"}).store == "consul"


def test_kv_config_is_immutable():
    cfg = KVConfig.from_dict({"engine": "kv", "uri": "memory://"})
    with pytest.raises(Exception):
        cfg.prefix = "changed"


@pytest.mark.parametrize("driver,source,url", [
    ("sqlite3", "/var/lib/certs.db", "sqlite:////var/lib/certs.db"),
    ("sqlite3", ":memory:", "sqlite://"),
    ("sqlite3", "file:certs.db?cache=shared", "sqlite:///certs.db"),
    ("postgres", "postgres://u:p@db/certs?sslmode=disable", "postgresql://u:p@db/certs?sslmode=disable"),
    ("postgres", "postgresql+psycopg://u@db/certs", "postgresql+psycopg://u@db/certs"),
    ("postgres", "host=db dbname=certs", "postgresql://"),
    ("mysql", "mysql://u:p@db/certs", "mysql://u:p@db/certs"),
])
def test_sql_urls(driver, source, url):
    cfg = SQLConfig.from_dict({"engine": "sql", "driver": driver, "data_source": source})
    assert cfg.url == url


def test_postgres_keyword_dsn_is_passed_to_driver():
    cfg = SQLConfig.from_dict({"engine": "sql", "driver": "postgres", "data_source": "host=db dbname=certs"})
    assert cfg.connect_args == {"dsn": "host=db dbname=certs"}


def test_consul_requires_prefix():
    with pytest.raises(ConfigurationError, match="prefix"):
        KVConfig.from_dict({"engine": "consul", "uri": "http://agent:8500"})

    cfg = KVConfig.from_dict({"engine": "consul", "uri": "http://agent:8500", "prefix": "certdb/"})
    assert cfg.prefix == "certdb/"


def test_secrets_are_not_in_repr():
    cfg = KVConfig.from_dict({"engine": "kv", "uri": "memory://", "password": "hunter2"})
    assert "hunter2" not in repr(cfg)
