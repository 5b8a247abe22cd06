from __future__ import annotations

from datetime import datetime
from typing import Annotated, ClassVar

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

from docsync.db.models import isoformat_utc


UtcDatetime = Annotated[datetime, PlainSerializer(isoformat_utc, return_type=str, when_used="json")]


class CamelModel(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RowModel(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(from_attributes=True)
