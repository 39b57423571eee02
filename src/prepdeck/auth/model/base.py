from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, orm
from sqlalchemy.orm import mapped_column

from typing_extensions import Annotated

str128 = Annotated[str, 128]
str320 = Annotated[str, 320]
str512 = Annotated[str, 512]
guidpk = Annotated[str, mapped_column(String(512), primary_key=True)]


class Base(orm.DeclarativeBase):
    type_annotation_map = {
        str128: String(128),
        str320: String(320),
        str512: String(512),
        guidpk: String(512),
    }


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to datetimes read back from backends that drop tzinfo (SQLite)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
