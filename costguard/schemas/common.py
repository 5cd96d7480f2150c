"""Shared schema types."""

from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator

from costguard.utils.datetime_utils import ensure_utc

# Timestamps read back from SQLite are naive; always emit them as UTC.
UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]
