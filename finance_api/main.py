import logging
import os
import traceback
from contextlib import asynccontextmanager
from datetime import date, datetime, time

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import TypeAdapter
from sqlalchemy import func, select
from sqlalchemy.engine import Engine, RowMapping
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from finance_api import reports
from finance_api.aggregation_engine import resolve_period
from finance_api.auth import (
    REFRESH_TOKEN,
    CurrentUser,
    UserRole,
    decode_token,
    ensure_owner,
    get_current_user,
    hash_password,
    issue_tokens,
    require_roles,
    verify_password,
)
from finance_api.config import Settings, load_settings
from finance_api.db import accounts, categories, create_db_engine, init_db, transactions, users
from finance_api.dependencies import get_app_settings, get_engine
from finance_api.errors import (
    Conflict,
    FinanceError,
    NotFound,
    StorageError,
    TokenInvalid,
    Unauthorized,
    ValidationError,
)
from finance_api.ledger import Ledger, to_naive_utc, utc_now
from finance_api.ledger_engine import TransactionType
from finance_api.logging_config import setup_logging
from finance_api.repository import (
    AccountRepository,
    CategoryRepository,
    TransactionRepository,
    UserRepository,
)
from finance_api.schemas import (
    AccountPayload,
    AccountResponse,
    AccountsSummaryResponse,
    AccountTypeSummaryResponse,
    AccountUpdatePayload,
    ApiResponse,
    AuthResponse,
    CategoryPayload,
    CategoryResponse,
    CategorySummaryResponse,
    ErrorResponse,
    FinancialSummaryResponse,
    LoginPayload,
    RefreshPayload,
    RegisterPayload,
    RoleCount,
    RolePayload,
    TransactionPatchPayload,
    TransactionPayload,
    TransactionResponse,
    UserProfileResponse,
    UserResponse,
    UserStatisticsResponse,
)
from finance_api.seed import ensure_default_categories, seed_demo_data

logger = logging.getLogger(__name__)

ADMIN_OR_PREMIUM = (UserRole.ADMIN, UserRole.PREMIUM)
ISO_DATE_LENGTH = len("2024-01-31")
DATE_ADAPTER = TypeAdapter(date)
DATETIME_ADAPTER = TypeAdapter(datetime)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = load_settings()
    setup_logging(settings.log_level, settings.log_dir)
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    with engine.begin() as conn:
        ensure_default_categories(conn)
        if settings.seed_demo_data:
            seed_demo_data(conn, settings.default_currency)
    app.state.settings = settings
    app.state.engine = engine
    logger.info("finance_api started (database=%s)", engine.url.render_as_string(hide_password=True))
    yield
    engine.dispose()
    logger.info("finance_api stopped")


app = FastAPI(title="finance_api", lifespan=lifespan)

frontend_origin = os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error envelope


def error_response(
    request: Request, status_code: int, message: str, error_code: str, exc: Exception | None = None
) -> JSONResponse:
    settings = getattr(request.app.state, "settings", None)
    detail = None
    if exc is not None and settings is not None and settings.debug:
        detail = "".join(traceback.format_exception(exc))
    body = ErrorResponse(message=message, error_code=error_code, detail=detail)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
    )


@app.exception_handler(FinanceError)
async def handle_finance_error(request: Request, exc: FinanceError) -> JSONResponse:
    if isinstance(exc, StorageError):
        logger.error("Storage error on %s %s: %s", request.method, request.url.path, exc.message)
    return error_response(request, exc.status_code, exc.message, exc.error_code, exc)


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    message = "; ".join(problems) or "Invalid request."
    return error_response(request, 400, message, ValidationError.error_code)


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(request, exc.status_code, str(exc.detail), "HTTP_ERROR")


@app.exception_handler(SQLAlchemyError)
async def handle_storage_exception(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Storage failure on %s %s", request.method, request.url.path)
    return error_response(request, 500, "A storage error occurred.", StorageError.error_code, exc)


@app.exception_handler(Exception)
async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(
        request, 500, "An internal server error occurred.", "INTERNAL_SERVER_ERROR", exc
    )


# Helpers


def validated(payload_cls, payload):
    try:
        return payload_cls.validate_payload(payload)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def page_window(page: int, page_size: int) -> tuple[int, int]:
    return (page - 1) * page_size, page_size


def owner_scope(column, current_user: CurrentUser) -> list:
    if current_user.is_admin:
        return []
    return [column == current_user.id]


def parse_query_datetime(value: str, name: str, *, end_of_day: bool = False) -> datetime:
    """ISO 8601 date or datetime. A bare date means the start of that day, or
    its last instant when `end_of_day` is set, so `endDate=2024-05-31` covers
    all of May 31.
    """
    value = value.strip()
    try:
        if len(value) == ISO_DATE_LENGTH:
            day = DATE_ADAPTER.validate_python(value)
            return datetime.combine(day, time.max if end_of_day else time.min)
        return to_naive_utc(DATETIME_ADAPTER.validate_python(value))
    except ValueError as exc:
        raise ValidationError(f"{name} must be an ISO 8601 date or datetime.") from exc


def parse_period(start_date: str | None, end_date: str | None) -> tuple[datetime, datetime]:
    start = parse_query_datetime(start_date, "startDate") if start_date else None
    end = parse_query_datetime(end_date, "endDate", end_of_day=True) if end_date else None
    try:
        return resolve_period(start, end, utc_now())
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def user_to_response(row: RowMapping) -> UserResponse:
    return UserResponse(
        id=row["id"],
        username=row["username"],
        email=row["email"],
        role=row["role"],
        created_at=row["created_at"],
    )


def auth_response(user: RowMapping, settings: Settings) -> AuthResponse:
    tokens = issue_tokens(user, settings)
    return AuthResponse(
        user_id=user["id"],
        username=user["username"],
        email=user["email"],
        role=user["role"],
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_at=tokens.expires_at,
    )


def account_to_response(row: RowMapping, transaction_count: int = 0) -> AccountResponse:
    return AccountResponse(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        balance=row["balance"],
        currency=row["currency"],
        type=row["type"],
        transaction_count=transaction_count,
    )


def category_to_response(row: RowMapping, transaction_count: int = 0) -> CategoryResponse:
    return CategoryResponse(
        id=row["id"],
        name=row["name"],
        color=row["color"],
        icon=row["icon"],
        type=row["type"],
        monthly_budget=row["monthly_budget"],
        transaction_count=transaction_count,
    )


def transaction_to_response(row: RowMapping) -> TransactionResponse:
    return TransactionResponse(
        id=row["id"],
        user_id=row["user_id"],
        account_id=row["account_id"],
        account_name=row["account_name"],
        account_type=row["account_type"],
        category_id=row["category_id"],
        category_name=row["category_name"],
        category_color=row["category_color"],
        amount=row["amount"],
        type=row["type"],
        description=row["description"],
        date=row["date"],
    )


def profile_response(engine: Engine, user_id: int) -> UserProfileResponse:
    with engine.begin() as conn:
        user = UserRepository(conn).get(user_id)
        if not user:
            raise NotFound("User not found.")
        account_count = AccountRepository(conn).count(accounts.c.user_id == user_id)
        transaction_count = TransactionRepository(conn).count(transactions.c.user_id == user_id)
    return UserProfileResponse(
        id=user["id"],
        username=user["username"],
        email=user["email"],
        role=user["role"],
        created_at=user["created_at"],
        account_count=account_count,
        transaction_count=transaction_count,
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


# Auth


@app.post("/auth/register", response_model=ApiResponse[AuthResponse])
def register(
    payload: RegisterPayload,
    engine: Engine = Depends(get_engine),
    settings: Settings = Depends(get_app_settings),
) -> ApiResponse[AuthResponse]:
    payload = validated(RegisterPayload, payload)
    try:
        with engine.begin() as conn:
            repo = UserRepository(conn)
            clash = repo.find_conflict(payload.username, payload.email)
            if clash:
                if clash["username"] == payload.username:
                    raise Conflict("A user with this username already exists.")
                raise Conflict("A user with this email already exists.")
            user = repo.add(
                username=payload.username,
                email=payload.email,
                password_hash=hash_password(payload.password),
                role=UserRole.USER,
                created_at=utc_now(),
            )
    except IntegrityError as exc:
        raise Conflict("A user with this username or email already exists.") from exc

    logger.info("Registered user %s (%s)", user["id"], user["username"])
    return ApiResponse(message="User registered.", data=auth_response(user, settings))


@app.post("/auth/login", response_model=ApiResponse[AuthResponse])
def login(
    payload: LoginPayload,
    engine: Engine = Depends(get_engine),
    settings: Settings = Depends(get_app_settings),
) -> ApiResponse[AuthResponse]:
    with engine.begin() as conn:
        user = UserRepository(conn).find_by_login(payload.username_or_email)

    if not user or not verify_password(payload.password, user["password_hash"]):
        raise Unauthorized("Invalid username/email or password.")
    return ApiResponse(message="Logged in.", data=auth_response(user, settings))


@app.post("/auth/refresh", response_model=ApiResponse[AuthResponse])
def refresh(
    payload: RefreshPayload,
    engine: Engine = Depends(get_engine),
    settings: Settings = Depends(get_app_settings),
) -> ApiResponse[AuthResponse]:
    claims = decode_token(payload.refresh_token, settings, REFRESH_TOKEN)
    with engine.begin() as conn:
        user = UserRepository(conn).get(claims["user_id"])
    if not user:
        raise TokenInvalid("Token subject no longer exists.")
    return ApiResponse(message="Token refreshed.", data=auth_response(user, settings))


@app.post("/auth/logout", response_model=ApiResponse[bool])
def logout(current_user: CurrentUser = Depends(get_current_user)) -> ApiResponse[bool]:
    logger.info("User %s logged out", current_user.id)
    return ApiResponse(message="Logged out.", data=True)


@app.get("/auth/profile", response_model=ApiResponse[UserProfileResponse])
@app.get("/users/profile", response_model=ApiResponse[UserProfileResponse])
def get_profile(
    current_user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[UserProfileResponse]:
    return ApiResponse(message="Profile loaded.", data=profile_response(engine, current_user.id))


# Users (admin)


@app.get("/users", response_model=ApiResponse[list[UserResponse]])
def list_users(
    current_user: CurrentUser = Depends(require_roles(UserRole.ADMIN)),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[list[UserResponse]]:
    with engine.begin() as conn:
        rows = UserRepository(conn).find(order_by=(users.c.id.asc(),))
    return ApiResponse(message="Users loaded.", data=[user_to_response(row) for row in rows])


@app.get("/users/statistics", response_model=ApiResponse[UserStatisticsResponse])
def user_statistics(
    current_user: CurrentUser = Depends(require_roles(UserRole.ADMIN)),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[UserStatisticsResponse]:
    month_start = utc_now().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    with engine.begin() as conn:
        repo = UserRepository(conn)
        total_users = repo.count()
        new_users = repo.count(users.c.created_at >= month_start)
        role_rows = conn.execute(
            select(users.c.role, func.count().label("count")).group_by(users.c.role)
        ).mappings().all()
    by_role = {row["role"]: int(row["count"]) for row in role_rows}
    statistics = UserStatisticsResponse(
        total_users=total_users,
        new_users_this_month=new_users,
        users_by_role=[
            RoleCount(role=role, count=by_role.get(role, 0))
            for role in (UserRole.ADMIN, UserRole.PREMIUM, UserRole.USER)
        ],
    )
    return ApiResponse(message="User statistics loaded.", data=statistics)


@app.put("/users/{user_id}/role", response_model=ApiResponse[UserResponse])
def update_user_role(
    user_id: int,
    payload: RolePayload,
    current_user: CurrentUser = Depends(require_roles(UserRole.ADMIN)),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[UserResponse]:
    payload = validated(RolePayload, payload)
    with engine.begin() as conn:
        row = UserRepository(conn).update(user_id, role=payload.role, updated_at=utc_now())
    if not row:
        raise NotFound(f"User {user_id} not found.")
    logger.info("User %s changed role of user %s to %s", current_user.id, user_id, payload.role)
    return ApiResponse(message=f"Role updated to {payload.role}.", data=user_to_response(row))


# Accounts


@app.get("/accounts", response_model=ApiResponse[list[AccountResponse]])
def list_accounts(
    current_user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[list[AccountResponse]]:
    with engine.begin() as conn:
        repo = AccountRepository(conn)
        rows = repo.find(
            *owner_scope(accounts.c.user_id, current_user),
            order_by=(accounts.c.type.asc(), accounts.c.name.asc()),
        )
        data = [account_to_response(row, repo.transaction_count(row["id"])) for row in rows]
    return ApiResponse(message="Accounts loaded.", data=data)


@app.get("/accounts/summary", response_model=ApiResponse[AccountsSummaryResponse])
def get_accounts_summary(
    current_user: CurrentUser = Depends(require_roles(*ADMIN_OR_PREMIUM)),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[AccountsSummaryResponse]:
    with engine.begin() as conn:
        summary = reports.accounts_summary(conn, current_user.id)
    return ApiResponse(
        message="Accounts summary loaded.",
        data=AccountsSummaryResponse(
            total_balance=summary.total_balance,
            total_accounts=summary.total_accounts,
            accounts_by_type=[
                AccountTypeSummaryResponse(
                    type=item.type, count=item.count, total_balance=item.total_balance
                )
                for item in summary.accounts_by_type
            ],
        ),
    )


@app.get("/accounts/{account_id}", response_model=ApiResponse[AccountResponse])
def get_account(
    account_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[AccountResponse]:
    with engine.begin() as conn:
        repo = AccountRepository(conn)
        row = repo.get(account_id)
        if not row:
            raise NotFound(f"Account {account_id} not found.")
        ensure_owner(current_user, row["user_id"], "account")
        data = account_to_response(row, repo.transaction_count(account_id))
    return ApiResponse(message="Account loaded.", data=data)


@app.post("/accounts", response_model=ApiResponse[AccountResponse], status_code=201)
def create_account(
    payload: AccountPayload,
    current_user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    settings: Settings = Depends(get_app_settings),
) -> ApiResponse[AccountResponse]:
    payload = validated(AccountPayload, payload)
    with engine.begin() as conn:
        row = AccountRepository(conn).add(
            user_id=current_user.id,
            name=payload.name,
            balance=payload.balance,
            currency=payload.currency or settings.default_currency,
            type=payload.type,
        )
    logger.info("User %s created account %s with balance %s", current_user.id, row["id"], row["balance"])
    return ApiResponse(message="Account created.", data=account_to_response(row))


@app.put("/accounts/{account_id}", response_model=ApiResponse[AccountResponse])
def update_account(
    account_id: int,
    payload: AccountUpdatePayload,
    current_user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[AccountResponse]:
    payload = validated(AccountUpdatePayload, payload)
    with engine.begin() as conn:
        repo = AccountRepository(conn)
        existing = repo.get(account_id, for_update=True)
        if not existing:
            raise NotFound(f"Account {account_id} not found.")
        ensure_owner(current_user, existing["user_id"], "account")
        row = repo.update(account_id, **payload.model_dump(exclude_none=True))
        data = account_to_response(row, repo.transaction_count(account_id))
    return ApiResponse(message="Account updated.", data=data)


@app.delete("/accounts/{account_id}", response_model=ApiResponse[bool])
def delete_account(
    account_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[bool]:
    try:
        with engine.begin() as conn:
            repo = AccountRepository(conn)
            existing = repo.get(account_id, for_update=True)
            if not existing:
                raise NotFound(f"Account {account_id} not found.")
            ensure_owner(current_user, existing["user_id"], "account")
            if repo.has_transactions(account_id):
                raise Conflict("Account cannot be deleted while transactions reference it.")
            repo.remove(account_id)
    except IntegrityError as exc:
        raise Conflict("Account cannot be deleted while transactions reference it.") from exc
    logger.info("User %s deleted account %s", current_user.id, account_id)
    return ApiResponse(message="Account deleted.", data=True)


# Categories


@app.get("/categories", response_model=ApiResponse[list[CategoryResponse]])
def list_categories(
    current_user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[list[CategoryResponse]]:
    with engine.begin() as conn:
        repo = CategoryRepository(conn)
        rows = repo.find(order_by=(categories.c.type.asc(), categories.c.name.asc()))
        data = [category_to_response(row, repo.transaction_count(row["id"])) for row in rows]
    return ApiResponse(message="Categories loaded.", data=data)


def _categories_of_type(engine: Engine, category_type: str) -> list[CategoryResponse]:
    with engine.begin() as conn:
        repo = CategoryRepository(conn)
        return [
            category_to_response(row, repo.transaction_count(row["id"]))
            for row in repo.by_type(category_type)
        ]


@app.get("/categories/income", response_model=ApiResponse[list[CategoryResponse]])
def list_income_categories(
    current_user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[list[CategoryResponse]]:
    return ApiResponse(
        message="Income categories loaded.",
        data=_categories_of_type(engine, TransactionType.INCOME),
    )


@app.get("/categories/expense", response_model=ApiResponse[list[CategoryResponse]])
def list_expense_categories(
    current_user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[list[CategoryResponse]]:
    return ApiResponse(
        message="Expense categories loaded.",
        data=_categories_of_type(engine, TransactionType.EXPENSE),
    )


@app.get("/categories/{category_id}", response_model=ApiResponse[CategoryResponse])
def get_category(
    category_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[CategoryResponse]:
    with engine.begin() as conn:
        repo = CategoryRepository(conn)
        row = repo.get(category_id)
        if not row:
            raise NotFound(f"Category {category_id} not found.")
        data = category_to_response(row, repo.transaction_count(category_id))
    return ApiResponse(message="Category loaded.", data=data)


@app.post("/categories", response_model=ApiResponse[CategoryResponse], status_code=201)
def create_category(
    payload: CategoryPayload,
    current_user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[CategoryResponse]:
    payload = validated(CategoryPayload, payload)
    with engine.begin() as conn:
        row = CategoryRepository(conn).add(**payload.model_dump())
    return ApiResponse(message="Category created.", data=category_to_response(row))


@app.put("/categories/{category_id}", response_model=ApiResponse[CategoryResponse])
def update_category(
    category_id: int,
    payload: CategoryPayload,
    current_user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[CategoryResponse]:
    payload = validated(CategoryPayload, payload)
    with engine.begin() as conn:
        repo = CategoryRepository(conn)
        existing = repo.get(category_id, for_update=True)
        if not existing:
            raise NotFound(f"Category {category_id} not found.")
        if existing["type"] != payload.type and repo.has_transactions(category_id):
            raise Conflict("Category type cannot change while transactions reference it.")
        row = repo.update(category_id, **payload.model_dump())
        data = category_to_response(row, repo.transaction_count(category_id))
    return ApiResponse(message="Category updated.", data=data)


@app.delete("/categories/{category_id}", response_model=ApiResponse[bool])
def delete_category(
    category_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[bool]:
    try:
        with engine.begin() as conn:
            repo = CategoryRepository(conn)
            if not repo.exists(category_id):
                raise NotFound(f"Category {category_id} not found.")
            if repo.has_transactions(category_id):
                raise Conflict("Category cannot be deleted while transactions reference it.")
            repo.remove(category_id)
    except IntegrityError as exc:
        raise Conflict("Category cannot be deleted while transactions reference it.") from exc
    return ApiResponse(message="Category deleted.", data=True)


# Transactions


def _transaction_page(
    engine: Engine, current_user: CurrentUser, conditions: list, page: int, page_size: int
) -> list[TransactionResponse]:
    offset, limit = page_window(page, page_size)
    with engine.begin() as conn:
        rows = TransactionRepository(conn).list_with_details(
            *conditions,
            *owner_scope(transactions.c.user_id, current_user),
            offset=offset,
            limit=limit,
        )
    return [transaction_to_response(row) for row in rows]


@app.get("/transactions", response_model=ApiResponse[list[TransactionResponse]])
def list_transactions(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100, alias="pageSize"),
    current_user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[list[TransactionResponse]]:
    data = _transaction_page(engine, current_user, [], page, page_size)
    return ApiResponse(message="Transactions loaded.", data=data)


@app.get("/transactions/summary", response_model=ApiResponse[FinancialSummaryResponse])
def financial_summary(
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    current_user: CurrentUser = Depends(require_roles(*ADMIN_OR_PREMIUM)),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[FinancialSummaryResponse]:
    start, end = parse_period(start_date, end_date)
    with engine.begin() as conn:
        summary = reports.period_summary(conn, current_user.id, start, end)
    return ApiResponse(
        message="Financial summary loaded.",
        data=FinancialSummaryResponse(
            total_income=summary.total_income,
            total_expenses=summary.total_expenses,
            balance=summary.balance,
            savings_rate=summary.savings_rate,
            total_transactions=summary.total_transactions,
            period_start=summary.period_start,
            period_end=summary.period_end,
        ),
    )


@app.get(
    "/transactions/expenses-by-category",
    response_model=ApiResponse[list[CategorySummaryResponse]],
)
def expenses_by_category(
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    current_user: CurrentUser = Depends(require_roles(*ADMIN_OR_PREMIUM)),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[list[CategorySummaryResponse]]:
    start, end = parse_period(start_date, end_date)
    with engine.begin() as conn:
        shares = reports.category_breakdown(conn, current_user.id, start, end)
    return ApiResponse(
        message="Expenses by category loaded.",
        data=[
            CategorySummaryResponse(
                category_name=share.category_name,
                category_color=share.category_color,
                total_amount=share.total_amount,
                percentage=share.percentage,
                transaction_count=share.transaction_count,
            )
            for share in shares
        ],
    )


@app.get("/transactions/type/{txn_type}", response_model=ApiResponse[list[TransactionResponse]])
def list_transactions_by_type(
    txn_type: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100, alias="pageSize"),
    current_user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[list[TransactionResponse]]:
    try:
        normalized = TransactionType.validate(txn_type)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    data = _transaction_page(
        engine, current_user, [transactions.c.type == normalized], page, page_size
    )
    return ApiResponse(message=f"Transactions of type {normalized} loaded.", data=data)


@app.get("/transactions/account/{account_id}", response_model=ApiResponse[list[TransactionResponse]])
def list_transactions_by_account(
    account_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100, alias="pageSize"),
    current_user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[list[TransactionResponse]]:
    with engine.begin() as conn:
        account = AccountRepository(conn).get(account_id)
    if not account:
        raise NotFound(f"Account {account_id} not found.")
    ensure_owner(current_user, account["user_id"], "account")
    data = _transaction_page(
        engine, current_user, [transactions.c.account_id == account_id], page, page_size
    )
    return ApiResponse(message="Account transactions loaded.", data=data)


@app.get(
    "/transactions/category/{category_id}",
    response_model=ApiResponse[list[TransactionResponse]],
)
def list_transactions_by_category(
    category_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100, alias="pageSize"),
    current_user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[list[TransactionResponse]]:
    with engine.begin() as conn:
        if not CategoryRepository(conn).exists(category_id):
            raise NotFound(f"Category {category_id} not found.")
    data = _transaction_page(
        engine, current_user, [transactions.c.category_id == category_id], page, page_size
    )
    return ApiResponse(message="Category transactions loaded.", data=data)


@app.get("/transactions/{transaction_id}", response_model=ApiResponse[TransactionResponse])
def get_transaction(
    transaction_id: int,
    current_user: CurrentUser = Depends(require_roles(*ADMIN_OR_PREMIUM)),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[TransactionResponse]:
    with engine.begin() as conn:
        row = TransactionRepository(conn).get_with_details(transaction_id)
    if not row:
        raise NotFound(f"Transaction {transaction_id} not found.")
    ensure_owner(current_user, row["user_id"], "transaction")
    return ApiResponse(message="Transaction loaded.", data=transaction_to_response(row))


@app.post("/transactions", response_model=ApiResponse[TransactionResponse], status_code=201)
def create_transaction(
    payload: TransactionPayload,
    current_user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[TransactionResponse]:
    payload = validated(TransactionPayload, payload)
    with engine.begin() as conn:
        account = AccountRepository(conn).get(payload.account_id)
        if account:
            ensure_owner(current_user, account["user_id"], "account")
        row = Ledger(conn).record(
            account_id=payload.account_id,
            category_id=payload.category_id,
            amount=payload.amount,
            type=payload.type,
            description=payload.description,
            date=payload.date,
        )
    return ApiResponse(message="Transaction created.", data=transaction_to_response(row))


@app.put("/transactions/{transaction_id}", response_model=ApiResponse[TransactionResponse])
def update_transaction(
    transaction_id: int,
    payload: TransactionPatchPayload,
    current_user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[TransactionResponse]:
    payload = validated(TransactionPatchPayload, payload)
    with engine.begin() as conn:
        existing = TransactionRepository(conn).get(transaction_id)
        if not existing:
            raise NotFound(f"Transaction {transaction_id} not found.")
        ensure_owner(current_user, existing["user_id"], "transaction")
        if payload.account_id is not None:
            target = AccountRepository(conn).get(payload.account_id)
            if target:
                ensure_owner(current_user, target["user_id"], "account")
        row = Ledger(conn).amend(transaction_id, payload.model_dump(exclude_none=True))
    return ApiResponse(message="Transaction updated.", data=transaction_to_response(row))


@app.delete("/transactions/{transaction_id}", response_model=ApiResponse[bool])
def delete_transaction(
    transaction_id: int,
    current_user: CurrentUser = Depends(require_roles(UserRole.ADMIN)),
    engine: Engine = Depends(get_engine),
) -> ApiResponse[bool]:
    with engine.begin() as conn:
        Ledger(conn).retract(transaction_id)
    return ApiResponse(message="Transaction deleted.", data=True)
