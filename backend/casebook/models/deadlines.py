from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from casebook.core.db import Base
from casebook.models.enums import DeadlineStatusEnum
from casebook.models.mixins import TenantScopedMixin, TimestampMixin


class Deadline(TenantScopedMixin, TimestampMixin, Base):
    __tablename__ = "deadlines"

    id = Column(Integer, primary_key=True, index=True)
    case_id = Column(Integer, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    responsible_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    deadline_date = Column(DateTime, nullable=False, index=True)
    is_fatal = Column(Boolean, nullable=False, default=False)
    status = Column(String, nullable=False, default=DeadlineStatusEnum.PENDING.value)
    completed_at = Column(DateTime, nullable=True)
    completed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    completion_notes = Column(Text, nullable=True)

    case = relationship("Case", back_populates="deadlines", lazy="select")
