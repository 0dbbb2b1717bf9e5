"""SQLAlchemy base declaration for all models."""
import pytz
from sqlalchemy import DateTime
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

# Single Base for all models - consolidates metadata registry
Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """Timestamp column that is always written and read as UTC.

    Aware values are converted to UTC before they are bound; naive values are
    taken to be UTC already. SQLite keeps no offset, so values read back are
    re-attached to UTC on every backend.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return pytz.UTC.localize(value)
        return value.astimezone(pytz.UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return pytz.UTC.localize(value)
        return value.astimezone(pytz.UTC)
