"""
Domain models for webhook events.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from packages.payments.models.domain.enums import ProcessorType


class WebhookEvent(BaseModel):
    """
    A verified webhook delivery, normalized across processors.

    The id is unique per processor; a repeated id is a replay of the same
    event and de-duplication is the consumer's job.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    type: str
    processor: ProcessorType
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @property
    def data_object(self) -> Dict[str, Any]:
        """The affected object, for processors that nest it under data.object."""
        obj = self.data.get("object")
        return obj if isinstance(obj, dict) else self.data

    def object_id(self) -> Optional[str]:
        value = self.data_object.get("id")
        return value if isinstance(value, str) else None
