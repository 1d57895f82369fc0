from sqlalchemy import Column, Date, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from casebook.core.db import Base
from casebook.models.enums import CasePriorityEnum, CaseStatusEnum, CaseTypeEnum
from casebook.models.mixins import TenantScopedMixin, TimestampMixin


class Case(TenantScopedMixin, TimestampMixin, Base):
    __tablename__ = "cases"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    case_number = Column(String, nullable=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    case_type = Column(String, nullable=False, default=CaseTypeEnum.CIVIL.value)
    status = Column(String, nullable=False, default=CaseStatusEnum.ACTIVE.value)
    priority = Column(String, nullable=False, default=CasePriorityEnum.MEDIUM.value)
    court = Column(String, nullable=True)
    responsible_lawyer_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    filed_at = Column(Date, nullable=True)

    client = relationship("Client", back_populates="cases", lazy="select")
    deadlines = relationship("Deadline", back_populates="case", lazy="select", cascade="all, delete-orphan")
