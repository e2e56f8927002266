from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

from ..core.slots import to_iso

# Instants go over the wire as ISO-8601 UTC without sub-seconds
IsoInstant = Annotated[datetime, PlainSerializer(to_iso, return_type=str, when_used="json")]

class CamelModel(BaseModel):
    """Base for booking payloads: snake_case in Python, camelCase in JSON."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

class MessageResponse(BaseModel):
    message: str
