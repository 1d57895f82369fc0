from sqlalchemy import JSON, Boolean, Column, Integer, String, Text
from sqlalchemy.orm import relationship

from casebook.core.db import Base
from casebook.models.enums import ClientTypeEnum
from casebook.models.mixins import TenantScopedMixin, TimestampMixin


class Client(TenantScopedMixin, TimestampMixin, Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    client_type = Column(String, nullable=False, default=ClientTypeEnum.INDIVIDUAL.value)
    full_name = Column(String, nullable=True)
    company_name = Column(String, nullable=True)
    document_number = Column(String, nullable=True, index=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    # {"street", "city", "state", "zip_code", "country"}
    address = Column(JSON, nullable=True)
    tags = Column(JSON, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    notes = Column(Text, nullable=True)

    cases = relationship("Case", back_populates="client", lazy="select", cascade="all, delete-orphan")

    @property
    def display_name(self) -> str:
        return self.full_name or self.company_name or ""
