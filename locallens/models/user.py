import re
from datetime import datetime
from enum import Enum
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String
from sqlalchemy.orm import relationship

from ..database import Base, utcnow

PHONE_PATTERN = re.compile(r"^[+]?[\d\s\-()]{7,20}$")


class UserRole(str, Enum):
    CITIZEN = "citizen"
    ADMINISTRATOR = "administrator"


# -------------------------------
# SQLAlchemy ORM Model
# -------------------------------
class User(Base):
    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    phone = Column(String(20))
    address = Column(JSON)
    avatar = Column(String(1024))
    role = Column(String(20), default=UserRole.CITIZEN.value, nullable=False)
    admin_area = Column(String(100))
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    reports = relationship("Report", back_populates="reporter", foreign_keys="Report.reported_by_id")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMINISTRATOR.value


# -------------------------------
# Pydantic Schemas (for FastAPI)
# -------------------------------
class CamelModel(BaseModel):
    """Wire models use camelCase keys and accept snake_case on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        str_strip_whitespace=True,
    )


def _check_password_strength(value: str) -> str:
    if not (re.search(r"[a-z]", value) and re.search(r"[A-Z]", value) and re.search(r"\d", value)):
        raise ValueError(
            "Password must contain at least one uppercase letter, one lowercase letter, and one number"
        )
    return value


def _check_phone(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    if not PHONE_PATTERN.match(value):
        raise ValueError("Please provide a valid phone number")
    return value


Password = Annotated[str, Field(min_length=6), AfterValidator(_check_password_strength)]
Phone = Annotated[Optional[str], AfterValidator(_check_phone)]


class Address(CamelModel):
    street: Optional[str] = None
    city: Optional[str] = Field(None, min_length=2)
    state: Optional[str] = None
    zip_code: Optional[str] = None


# -------- Requests --------
class RegisterRequest(CamelModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: Password
    phone: Phone = None
    address: Optional[Address] = None
    role: Optional[UserRole] = UserRole.CITIZEN


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshRequest(CamelModel):
    refresh_token: Optional[str] = None


class ProfileUpdateRequest(CamelModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    phone: Phone = None
    address: Optional[Address] = None
    avatar: Optional[str] = None


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: Password


# -------- Responses --------
class UserPublic(CamelModel):
    id: int = Field(validation_alias="user_id")
    name: str
    email: EmailStr
    phone: Optional[str] = None
    address: Optional[dict] = None
    avatar: Optional[str] = None
    role: UserRole
    admin_area: Optional[str] = None
    is_active: bool = True
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


class UserRef(CamelModel):
    """Reduced user shape embedded in reports."""

    id: int = Field(validation_alias="user_id")
    name: str
    email: Optional[str] = None


class AuthResponse(CamelModel):
    message: str
    user: UserPublic
    token: str
    refresh_token: str


class TokenResponse(CamelModel):
    message: str
    token: str


class ProfileResponse(CamelModel):
    message: str
    user: UserPublic


class MessageResponse(CamelModel):
    message: str


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class UserPagination(Pagination):
    total_users: int


class UserListResponse(CamelModel):
    message: str
    users: List[UserPublic]
    pagination: UserPagination
