# certdb/factory.py
import os
from typing import Any, Dict, Optional
from certdb.accessor import Accessor
from certdb.config import KV_ENGINES, SQL_ENGINES, KVConfig, SQLConfig, engine_of, load_config_file
from certdb.errors import ConfigurationError
from certdb.logger import get_logger

log = get_logger("certdb.factory")

CONFIG_ENV = "CERTDB_CONFIG"


def load_accessor(config: Optional[Dict[str, Any]] = None) -> Accessor:
    """
    Build the accessor a configuration names.

    engine:
      - "kv" / "couchbase" / "consul" -> KVAccessor (store picked from uri)
      - "sql"                         -> SQLAccessor

    With no config, the JSON file named by $CERTDB_CONFIG is used.
    """
    if config is None:
        path = os.getenv(CONFIG_ENV)
        if not path:
            raise ConfigurationError(f"no certdb configuration given and {CONFIG_ENV} is not set")
        config = load_config_file(path)

    engine = engine_of(config)

    if engine in KV_ENGINES:
        from certdb.kv import kv_accessor
        cfg = KVConfig.from_dict(config)
        log.info(f"[FACTORY] kv accessor store={cfg.store} uri={cfg.uri}")
        return kv_accessor(cfg)

    if engine in SQL_ENGINES:
        from certdb.sql import sql_accessor
        cfg = SQLConfig.from_dict(config)
        log.info(f"[FACTORY] sql accessor driver={cfg.driver}")
        return sql_accessor(cfg)

    raise ConfigurationError(f"unknown certdb engine: {engine!r}")


def load_accessor_from_file(path) -> Accessor:
    log.debug(f"loading certdb configuration from {path}")
    return load_accessor(load_config_file(path))
