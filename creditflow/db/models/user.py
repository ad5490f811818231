"""
User Model - Employees, Freelancers, HODs, Admins and Accounts staff
"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, Boolean, ForeignKey

from creditflow.db.database import Base, enum_values


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    HOD = "hod"
    EMPLOYEE = "employee"
    ACCOUNT = "account"
    # Legacy values still present on older accounts
    USER = "user"
    INITIATOR = "initiator"
    ACCOUNTS_MANAGER = "accounts_manager"


class EmployeeType(str, enum.Enum):
    PERMANENT_INDIA = "permanent_india"
    PERMANENT_USA = "permanent_usa"
    FREELANCER_INDIA = "freelancer_india"
    FREELANCER_USA = "freelancer_usa"
    # Legacy, treated as permanent_india
    PERMANENT = "permanent"

    @property
    def is_freelancer(self) -> bool:
        return self.value.startswith("freelancer")


class Currency(str, enum.Enum):
    USD = "USD"
    INR = "INR"


class User(Base):
    """Reference data for the workflow; user CRUD lives outside this service"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(150), nullable=True)
    role = Column(
        SQLEnum(UserRole, name="user_role", values_callable=enum_values),
        default=UserRole.EMPLOYEE,
        nullable=False,
    )
    employee_type = Column(
        SQLEnum(EmployeeType, name="employee_type", values_callable=enum_values),
        nullable=True,
    )
    # Canonical currency, maintained by CurrencyPolicy.reconcile
    currency = Column(
        SQLEnum(Currency, name="currency_code", values_callable=enum_values),
        nullable=True,
    )
    hod_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def display_name(self) -> str:
        return self.name or self.email
