from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import SQLModel, Field

from ....utils.date_utils import utcnow


class BaseModel(SQLModel):
    """
    Base model with common fields for all database models.
    """

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        index=True,
        nullable=False,
        description="Unique identifier"
    )


class TimestampMixin(SQLModel):
    """
    Mixin for models that need timestamp fields.
    """

    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        index=True,
        description="Record creation timestamp"
    )

    updated_at: Optional[datetime] = Field(
        default=None,
        sa_column_kwargs={"onupdate": utcnow},
        description="Record last update timestamp"
    )
