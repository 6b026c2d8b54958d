import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from garden.db.database import Base


def utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class Participant(Base):
    __tablename__ = "participants"
    __table_args__ = (UniqueConstraint("name", "phone", name="uq_participants_name_phone"),)

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    employee_id: Mapped[str] = mapped_column(String(64), nullable=False)
    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, nullable=False
    )
    progress_level: Mapped[int] = mapped_column(Integer, default=0, nullable=False, index=True)
    flower_seed_name: Mapped[str | None] = mapped_column(String(120))
    flower_image: Mapped[str | None] = mapped_column(String(255))
    commitment_percentage: Mapped[int | None] = mapped_column(Integer)
