from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from homeinv.models.base import Base

class FailureMetricWindow(Base):
    __tablename__ = "webhook_metrics"

    metric_name: Mapped[str] = mapped_column(sa.String(100), primary_key=True)
    window_start_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), primary_key=True)
    window_end_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    failure_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, server_default="0")
