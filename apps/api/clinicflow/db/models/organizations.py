"""SQLAlchemy ORM models for tenants."""

import uuid
from datetime import datetime

from sqlalchemy import Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from clinicflow.db.base import Base
from clinicflow.utils.datetime_utils import utcnow


class Organization(Base):
    """
    A clinic (tenant) in the multi-tenant system.

    Plan limits are advisory and are not enforced by any write path.
    """

    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    # Plan limits
    client_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    storage_gb_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    messages_per_month_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )
