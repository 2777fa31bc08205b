from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from homeinv.models.base import Base

class Subscriber(Base):
    __tablename__ = "subscribers"

    # opaque external user id (auth provider / billing app_user_id)
    id: Mapped[str] = mapped_column(sa.String(255), primary_key=True)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )

    subscription_status: Mapped[str] = mapped_column(
        sa.Enum("free", "active", "expired", "canceled", name="subscription_status"),
        nullable=False,
        server_default="free",
    )

    subscription_plan: Mapped[str | None] = mapped_column(
        sa.Enum("pro_monthly", "pro_annual", "pro_lifetime", name="subscription_plan"),
        nullable=True,
    )

    subscription_renew_date: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=True,
    )
    subscription_updated_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=True,
    )
