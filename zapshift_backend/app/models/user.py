"""
User database model.

Minimal projection of the external account store: enough to resolve
an authenticated email to a role.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum
from sqlalchemy.sql import func
from zapshift_backend.app.db.session import Base
from zapshift_backend.app.models.enums import UserRole


class User(Base):
    """
    User model for role resolution.

    Roles are promoted to RIDER when a rider application with the same
    email is approved.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    display_name = Column(String(100), nullable=True)

    role = Column(Enum(UserRole), default=UserRole.USER, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role.value}')>"
