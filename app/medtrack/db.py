from contextlib import contextmanager
import os

import psycopg

from .config import DEFAULT_DSN


def dsn_from_env(default: str | None = None) -> str:
    return os.getenv("MT_DSN", default or DEFAULT_DSN)


@contextmanager
def pg(dsn: str | None = None, autocommit: bool = True):
    with psycopg.connect(dsn or dsn_from_env(), autocommit=autocommit) as conn:
        yield conn
