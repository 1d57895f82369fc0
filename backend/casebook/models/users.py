from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship

from casebook.core.db import Base
from casebook.models.mixins import TimestampMixin


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False, index=True)

    memberships = relationship("TenantUser", back_populates="user", lazy="selectin")
