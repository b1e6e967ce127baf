"""
Domain models for customers.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from packages.payments.models.domain.enums import ProcessorType


class Customer(BaseModel):
    """
    A customer as known to a payment processor.

    Immutable: update calls return a new instance.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None

    # Processor identity
    processor: ProcessorType
    processor_customer_id: str = Field(min_length=1)

    metadata: Optional[Dict[str, Any]] = None

    created_at: datetime
    updated_at: datetime
