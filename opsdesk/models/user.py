# opsdesk/models/user.py
"""User rows are owned by the auth/user-management subsystem.

The chat core only reads ``id``, ``role``, ``is_active`` and the display fields.
"""
import enum

from sqlalchemy import Boolean, Column, Enum, String

from .base import Base


class UserRole(str, enum.Enum):
    EMPLOYEE = "EMPLOYEE"
    MANAGER = "MANAGER"
    SUPER_ADMIN = "SUPER_ADMIN"


PRIVILEGED_ROLES = (UserRole.MANAGER, UserRole.SUPER_ADMIN)


class User(Base):
    __tablename__ = "users"

    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(Enum(UserRole, native_enum=False, length=20), nullable=False, default=UserRole.EMPLOYEE)
    is_active = Column(Boolean, default=True, nullable=False)
