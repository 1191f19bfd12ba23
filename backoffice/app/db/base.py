from datetime import datetime, timezone

from sqlalchemy import BigInteger, Integer
from sqlalchemy.orm import DeclarativeBase

# SQLite n'auto-incrémente que INTEGER PRIMARY KEY
IdType = BigInteger().with_variant(Integer, "sqlite")


def utcnow() -> datetime:
    # colonnes DateTime(timezone=True) : toujours des valeurs aware
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass
