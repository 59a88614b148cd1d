from datetime import datetime

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import SQLModel, Field, Column


class EmailRateLimit(SQLModel, table=True):
    __tablename__ = "email_rate_limits"
    __table_args__ = (UniqueConstraint("client_key", "window_start", name="uq_email_rate_limits_window"),)

    id: int | None = Field(default=None, primary_key=True)
    client_key: str = Field(index=True, nullable=False)
    window_start: datetime = Field(sa_column=Column(DateTime(timezone=False), nullable=False))
    hits: int = 0
