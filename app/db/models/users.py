from sqlalchemy import String, Integer, Boolean, DateTime, ForeignKey, Enum as SQLEnum, func
from datetime import datetime
from enum import Enum
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from app.db.database import Base


class ShiftRole(str, Enum):
    EDITOR = "editor"
    SENIOR = "senior"
    CORRESPONDENT = "correspondent"


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Users(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(200), index=True, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    shift_role: Mapped[ShiftRole] = mapped_column(SQLEnum(ShiftRole, name="shift_role_enum"), nullable=False, default=ShiftRole.CORRESPONDENT)
    bureau_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("bureaus.id"), nullable=True, index=True)
    team: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    status: Mapped[UserStatus] = mapped_column(SQLEnum(UserStatus, name="user_status_enum"), nullable=False, default=UserStatus.ACTIVE)
    is_team_leader: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
