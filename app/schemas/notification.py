from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from typing import Any, Optional
from datetime import datetime
import uuid


class NotificationResponse(BaseModel):
    id: uuid.UUID
    type: str
    title: str
    message: str
    read: bool
    action_url: Optional[str] = None
    # the ORM attribute is metadata_, DeclarativeBase reserves "metadata"
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("metadata_", "metadata"))
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
