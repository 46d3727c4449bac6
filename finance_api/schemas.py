from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

from finance_api.auth import MAX_BCRYPT_PASSWORD_BYTES, UserRole
from finance_api.config import normalize_currency
from finance_api.ledger_engine import TransactionType, quantize_amount, validate_amount

T = TypeVar("T")

MAX_DESCRIPTION_LENGTH = 200


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    message: str = ""
    data: T | None = None
    timestamp: datetime = Field(default_factory=_utc_now)


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    error_code: str
    timestamp: datetime = Field(default_factory=_utc_now)
    detail: str | None = None


class AccountType:
    values = {"cash", "bank_card", "credit_card", "savings", "investment"}

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = value.strip().lower().replace("-", "_").replace(" ", "_")
        if normalized not in cls.values:
            raise ValueError("Invalid account type.")
        return normalized


# Auth / users


class RegisterPayload(BaseModel):
    username: str
    email: str
    password: str

    @classmethod
    def validate_payload(cls, payload: "RegisterPayload") -> "RegisterPayload":
        payload.username = payload.username.strip()
        payload.email = payload.email.strip().lower()
        if not 3 <= len(payload.username) <= 50:
            raise ValueError("Username must be between 3 and 50 characters.")
        local, _, domain = payload.email.partition("@")
        if not local or "." not in domain or len(payload.email) > 100:
            raise ValueError("A valid email address is required.")
        if len(payload.password) < 6:
            raise ValueError("Password must be at least 6 characters.")
        if len(payload.password.encode("utf-8")) > MAX_BCRYPT_PASSWORD_BYTES:
            raise ValueError("Password must be at most 72 bytes.")
        return payload


class LoginPayload(BaseModel):
    username_or_email: str
    password: str


class RefreshPayload(BaseModel):
    refresh_token: str


class RolePayload(BaseModel):
    role: str

    @classmethod
    def validate_payload(cls, payload: "RolePayload") -> "RolePayload":
        payload.role = UserRole.validate(payload.role)
        return payload


class AuthResponse(BaseModel):
    user_id: int
    username: str
    email: str
    role: str
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_at: datetime


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    role: str
    created_at: datetime | None = None


class UserProfileResponse(UserResponse):
    account_count: int
    transaction_count: int


class RoleCount(BaseModel):
    role: str
    count: int


class UserStatisticsResponse(BaseModel):
    total_users: int
    new_users_this_month: int
    users_by_role: list[RoleCount]


# Accounts


class AccountPayload(BaseModel):
    name: str
    type: str
    currency: str | None = None
    balance: Decimal = Decimal("0")

    @classmethod
    def validate_payload(cls, payload: "AccountPayload") -> "AccountPayload":
        payload.name = payload.name.strip()
        if not payload.name:
            raise ValueError("Account name required.")
        payload.type = AccountType.validate(payload.type)
        if payload.currency is not None:
            payload.currency = normalize_currency(payload.currency)
        payload.balance = quantize_amount(payload.balance)
        return payload


class AccountUpdatePayload(BaseModel):
    name: str | None = None
    type: str | None = None
    currency: str | None = None

    @classmethod
    def validate_payload(cls, payload: "AccountUpdatePayload") -> "AccountUpdatePayload":
        if payload.name is not None:
            payload.name = payload.name.strip()
            if not payload.name:
                raise ValueError("Account name required.")
        if payload.type is not None:
            payload.type = AccountType.validate(payload.type)
        if payload.currency is not None:
            payload.currency = normalize_currency(payload.currency)
        return payload


class AccountResponse(BaseModel):
    id: int
    user_id: int
    name: str
    balance: Decimal
    currency: str
    type: str
    transaction_count: int = 0


class AccountTypeSummaryResponse(BaseModel):
    type: str
    count: int
    total_balance: Decimal


class AccountsSummaryResponse(BaseModel):
    total_balance: Decimal
    total_accounts: int
    accounts_by_type: list[AccountTypeSummaryResponse]


# Categories


class CategoryPayload(BaseModel):
    name: str
    type: str
    color: str | None = None
    icon: str | None = None
    monthly_budget: Decimal | None = None

    @classmethod
    def validate_payload(cls, payload: "CategoryPayload") -> "CategoryPayload":
        payload.name = payload.name.strip()
        if not payload.name:
            raise ValueError("Category name required.")
        payload.type = TransactionType.validate(payload.type)
        payload.color = (payload.color or "").strip() or "#9E9E9E"
        payload.icon = (payload.icon or "").strip() or "category"
        if payload.monthly_budget is not None:
            payload.monthly_budget = quantize_amount(payload.monthly_budget)
            if payload.monthly_budget < 0:
                raise ValueError("Monthly budget cannot be negative.")
        return payload


class CategoryResponse(BaseModel):
    id: int
    name: str
    color: str
    icon: str
    type: str
    monthly_budget: Decimal | None = None
    transaction_count: int = 0


# Transactions


class TransactionPayload(BaseModel):
    account_id: int
    category_id: int
    amount: Decimal
    type: str
    description: str = ""
    date: datetime | None = None

    @classmethod
    def validate_payload(cls, payload: "TransactionPayload") -> "TransactionPayload":
        payload.type = TransactionType.validate(payload.type)
        payload.amount = validate_amount(payload.amount)
        payload.description = (payload.description or "").strip()
        if len(payload.description) > MAX_DESCRIPTION_LENGTH:
            raise ValueError("Description cannot exceed 200 characters.")
        return payload


class TransactionPatchPayload(BaseModel):
    account_id: int | None = None
    category_id: int | None = None
    amount: Decimal | None = None
    type: str | None = None
    description: str | None = None
    date: datetime | None = None

    @classmethod
    def validate_payload(cls, payload: "TransactionPatchPayload") -> "TransactionPatchPayload":
        if payload.type is not None:
            payload.type = TransactionType.validate(payload.type)
        if payload.amount is not None:
            payload.amount = validate_amount(payload.amount)
        if payload.description is not None:
            payload.description = payload.description.strip()
            if len(payload.description) > MAX_DESCRIPTION_LENGTH:
                raise ValueError("Description cannot exceed 200 characters.")
        return payload


class TransactionResponse(BaseModel):
    id: int
    user_id: int
    account_id: int
    account_name: str
    account_type: str
    category_id: int
    category_name: str
    category_color: str
    amount: Decimal
    type: str
    description: str
    date: datetime


class FinancialSummaryResponse(BaseModel):
    total_income: Decimal
    total_expenses: Decimal
    balance: Decimal
    savings_rate: Decimal
    total_transactions: int
    period_start: datetime
    period_end: datetime


class CategorySummaryResponse(BaseModel):
    category_name: str
    category_color: str
    total_amount: Decimal
    percentage: Decimal
    transaction_count: int
