# certdb/sql/__init__.py
from sqlalchemy import create_engine
from sqlalchemy.exc import ArgumentError, NoSuchModuleError
from sqlalchemy.pool import StaticPool
from certdb.config import SQLConfig
from certdb.errors import ConfigurationError
from certdb.sql.accessor import SQLAccessor


def sql_accessor(cfg: SQLConfig) -> SQLAccessor:
    kwargs = {"connect_args": cfg.connect_args, "echo": cfg.echo, "pool_pre_ping": True}
    if cfg.url == "sqlite://":
        # one shared in-memory database for every thread
        kwargs["poolclass"] = StaticPool

    try:
        engine = create_engine(cfg.url, **kwargs)
    except (ArgumentError, NoSuchModuleError, ImportError) as exc:
        raise ConfigurationError(f"cannot use driver {cfg.driver!r}: {exc}") from exc

    return SQLAccessor(engine, create_schema=cfg.create_schema)


__all__ = ["SQLAccessor", "sql_accessor"]
