"""Organization model for the outreach sequencer."""

from typing import Optional

from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class Organization(BaseModel):
    """Organization model representing a tenant in the system.

    Attributes:
        id: Unique identifier (UUID string)
        name: Organization name
        slug: URL-friendly identifier
        is_active: Whether organization is active
        settings: JSON configuration object for organization-specific settings
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(nullable=False, index=True)
    slug: Mapped[str] = mapped_column(nullable=False, unique=True, index=True)
    is_active: Mapped[bool] = mapped_column(default=True, index=True)
    settings: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
