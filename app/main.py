"""
FastAPI Application Entry Point

Food Share Orders - free food distribution service.
Local object storage in development, Supabase Storage in production.

Endpoints:
    - POST /api/auth/signup, /api/auth/login: Accounts and bearer tokens
    - GET /api/auth/admin-check: Admin capability check
    - POST /api/register: Profile registration
    - GET /api/categories, /api/products: Catalog
    - POST /api/orders: Place an order from the cart
    - POST /api/upload: Identity document upload
    - GET /api/documents/download: Document download
    - /api/admin/*: Admin console (orders, export, catalog, users)
    - GET /health: System health check
"""

import logging
from datetime import datetime
from typing import Any, Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, File, Form, Query, Request, Response, UploadFile
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

# Internal imports
from app.core.config import get_settings, setup_logging
from app.core.documents import content_disposition
from app.core.security import create_access_token, create_capability_token
from app.database import get_db, init_db, engine
from app.models import OrderStatus, Profile
from app.schemas import (
    AdminCheckResponse,
    AdminOrderListResponse,
    AdminOrderResponse,
    AdminProfileUpdate,
    AdminUserCreate,
    AdminUserDetail,
    AdminUserSummary,
    CategoryCreate,
    CategoryResponse,
    DashboardResponse,
    DocumentDeleteResponse,
    DocumentResponse,
    ErrorResponse,
    HealthResponse,
    LoginRequest,
    OrderCreate,
    OrderItemsUpdate,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    ProcessingOrderResponse,
    ProductCreate,
    ProductResponse,
    ProductUpdate,
    ProfileRegister,
    ProfileResponse,
    ProfileUpdate,
    RegisterResponse,
    SignupRequest,
    TokenResponse,
    UploadResponse,
)
from app.services import catalog, documents, orders, profiles
from app.services.auth import (
    Authorized,
    check_admin,
    get_current_user_id,
    login,
    require_admin,
    require_profile,
    require_user,
    signup,
)
from app.services.errors import FoodOrderError, InvalidRequestError
from app.services.excel_manager import ExcelManager, XLSX_MEDIA_TYPE
from app.services.storage import get_storage_service

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    # Initialize database
    await init_db()
    logger.info("✅ Database initialized")

    # Object storage
    storage = get_storage_service()
    logger.info(f"✅ Storage Service: {storage.provider_name}")
    if await storage.ensure_bucket(settings.storage_bucket):
        logger.info(f"✅ Bucket ready: {settings.storage_bucket}")
    else:
        logger.warning(f"⚠️ Bucket {settings.storage_bucket} is not available")

    # Validate production config
    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Food share ordering service: catalog, cart checkout, identity documents "
        "and an admin console for orders, products and users."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def category_response(category, product_count: int = 0) -> CategoryResponse:
    return CategoryResponse(
        id=category.id,
        name=category.name,
        created_at=category.created_at,
        product_count=product_count,
    )


def user_summary(profile: Profile, document_count: int) -> AdminUserSummary:
    return AdminUserSummary(
        **ProfileResponse.model_validate(profile).model_dump(),
        document_count=document_count,
    )


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🥫 Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db)
) -> HealthResponse:
    """Verify database and object storage are operational."""

    # Check database
    db_status = "healthy"
    try:
        await db.execute(select(func.count()).select_from(Profile))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    # Check storage
    storage = get_storage_service()
    storage_status = "healthy" if await storage.health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [db_status, storage_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        storage=storage_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# AUTH ENDPOINTS
# =============================================================================

@app.post(
    "/api/auth/signup",
    response_model=TokenResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Auth"],
    summary="Create Account",
)
async def signup_account(
    payload: SignupRequest,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    """Create a sign-in account. Complete it with POST /api/register."""
    account = await signup(db, payload.email, payload.password)
    return TokenResponse(access_token=create_access_token(account.id), user_id=account.id)


@app.post(
    "/api/auth/login",
    response_model=TokenResponse,
    responses=ERROR_RESPONSES,
    tags=["Auth"],
    summary="Sign In",
)
async def login_account(
    payload: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    account = await login(db, payload.email, payload.password)
    return TokenResponse(access_token=create_access_token(account.id), user_id=account.id)


@app.get(
    "/api/auth/me",
    response_model=ProfileResponse,
    responses=ERROR_RESPONSES,
    tags=["Auth"],
)
async def current_profile(profile: Profile = Depends(require_profile)) -> ProfileResponse:
    return ProfileResponse.model_validate(profile)


@app.get(
    "/api/auth/admin-check",
    response_model=AdminCheckResponse,
    tags=["Auth"],
    summary="Admin Capability Check",
)
async def admin_check(
    user_id: Optional[str] = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> AdminCheckResponse:
    """
    Report whether the signed-in user is an administrator.

    When authorized, a short-lived capability token is returned that the
    client may cache for the rest of the browser session. Admin endpoints
    still re-check the database on every call.
    """
    outcome = await check_admin(db, user_id)
    if not isinstance(outcome, Authorized):
        return AdminCheckResponse(authorized=False, reason=outcome.reason, user_id=user_id)

    token, expires_at = create_capability_token(outcome.profile.id)
    return AdminCheckResponse(
        authorized=True,
        user_id=outcome.profile.id,
        capability_token=token,
        expires_at=expires_at,
    )


# =============================================================================
# PROFILE ENDPOINTS
# =============================================================================

@app.post(
    "/api/register",
    response_model=RegisterResponse,
    responses=ERROR_RESPONSES,
    tags=["Profiles"],
    summary="Register Profile",
)
async def register(
    payload: ProfileRegister,
    caller_id: str = Depends(require_user),
    db: AsyncSession = Depends(get_db),
) -> RegisterResponse:
    """Create the profile of an account, or update it if it already exists."""
    profile, created = await profiles.register_profile(db, payload, caller_id)
    return RegisterResponse(created=created, data=ProfileResponse.model_validate(profile))


@app.get("/api/profile", response_model=ProfileResponse, responses=ERROR_RESPONSES, tags=["Profiles"])
async def get_own_profile(profile: Profile = Depends(require_profile)) -> ProfileResponse:
    return ProfileResponse.model_validate(profile)


@app.put("/api/profile", response_model=ProfileResponse, responses=ERROR_RESPONSES, tags=["Profiles"])
async def update_own_profile(
    changes: ProfileUpdate,
    profile: Profile = Depends(require_profile),
    db: AsyncSession = Depends(get_db),
) -> ProfileResponse:
    updated = await profiles.update_own_profile(db, profile, changes)
    return ProfileResponse.model_validate(updated)


# =============================================================================
# CATALOG ENDPOINTS
# =============================================================================

@app.get("/api/categories", response_model=list[CategoryResponse], tags=["Catalog"])
async def list_categories(db: AsyncSession = Depends(get_db)) -> list[CategoryResponse]:
    return [category_response(c, n) for c, n in await catalog.list_categories(db)]


@app.get("/api/products", response_model=list[ProductResponse], tags=["Catalog"])
async def list_products(
    category_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> list[ProductResponse]:
    """List products, optionally only those of one category."""
    products = await catalog.list_products(db, category_id)
    return [ProductResponse.model_validate(p) for p in products]


# =============================================================================
# ORDER ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    response_model=OrderResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Place Order",
)
async def create_order(
    order_data: OrderCreate,
    profile: Profile = Depends(require_profile),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    """
    Place the whole cart as one order.

    The order starts in ``processing``. A user cannot place another order
    while one is still processing.
    """
    logger.info(f"Creating order for: {profile.id}")
    order = await orders.place_order(db, profile, order_data)
    return orders.to_order_response(order)


@app.get("/api/orders", response_model=OrderListResponse, responses=ERROR_RESPONSES, tags=["Orders"])
async def list_own_orders(
    profile: Profile = Depends(require_profile),
    db: AsyncSession = Depends(get_db),
) -> OrderListResponse:
    """Order history of the signed-in user, newest first."""
    user_orders = await orders.list_user_orders(db, profile.id)
    return OrderListResponse(
        total=len(user_orders),
        orders=[orders.to_order_response(o) for o in user_orders],
    )


@app.get(
    "/api/orders/processing",
    response_model=ProcessingOrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def processing_order(
    profile: Profile = Depends(require_profile),
    db: AsyncSession = Depends(get_db),
) -> ProcessingOrderResponse:
    """Whether checkout is blocked by an order still in processing."""
    pending = await orders.processing_order_for(db, profile.id)
    return ProcessingOrderResponse(
        has_processing_order=pending is not None,
        order_id=pending.id if pending else None,
    )


@app.get("/api/orders/{order_id}", response_model=OrderResponse, responses=ERROR_RESPONSES, tags=["Orders"])
async def get_order(
    order_id: int,
    profile: Profile = Depends(require_profile),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    """Get a specific order by ID."""
    order = await orders.get_order_for(db, order_id, profile)
    return orders.to_order_response(order)


# =============================================================================
# DOCUMENT ENDPOINTS
# =============================================================================

@app.post(
    "/api/upload",
    response_model=UploadResponse,
    responses={**ERROR_RESPONSES, 500: {"model": ErrorResponse}},
    tags=["Documents"],
    summary="Upload Identity Document",
)
async def upload_document(
    file: Optional[UploadFile] = File(None),
    user_id: Optional[str] = Form(None),
    profile: Profile = Depends(require_profile),
    db: AsyncSession = Depends(get_db),
) -> UploadResponse:
    """
    Upload a PDF, DOC, DOCX, JPEG or PNG file of at most 5 MB.

    Each user keeps a single document; delete it before uploading another.
    """
    if file is None:
        raise InvalidRequestError("File or user id is missing")

    # One byte past the limit is enough to reject an oversized file
    data = await file.read(settings.document_max_bytes + 1)
    document = await documents.upload_document(
        db,
        get_storage_service(),
        owner_id=user_id,
        actor=profile,
        filename=file.filename or "",
        data=data,
        content_type=file.content_type,
    )
    return UploadResponse(
        message="File uploaded successfully",
        document=DocumentResponse.model_validate(document),
    )


@app.get("/api/documents", response_model=list[DocumentResponse], responses=ERROR_RESPONSES, tags=["Documents"])
async def list_own_documents(
    profile: Profile = Depends(require_profile),
    db: AsyncSession = Depends(get_db),
) -> list[DocumentResponse]:
    return [DocumentResponse.model_validate(d) for d in await documents.list_documents(db, profile.id)]


@app.get(
    "/api/documents/download",
    response_class=Response,
    responses={**ERROR_RESPONSES, 500: {"model": ErrorResponse}},
    tags=["Documents"],
    summary="Download Document",
)
async def download_document(
    id: Optional[int] = Query(None, description="Document ID"),
    profile: Profile = Depends(require_profile),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Stream a document back as an attachment with its stored content type."""
    document, data = await documents.download_document(db, get_storage_service(), id, profile)
    return Response(
        content=data,
        media_type=document.mime_type or "application/octet-stream",
        headers={"Content-Disposition": content_disposition(document.filename)},
    )


@app.delete(
    "/api/documents/{document_id}",
    response_model=DocumentDeleteResponse,
    responses={**ERROR_RESPONSES, 500: {"model": ErrorResponse}},
    tags=["Documents"],
)
async def delete_document(
    document_id: int,
    profile: Profile = Depends(require_profile),
    db: AsyncSession = Depends(get_db),
) -> DocumentDeleteResponse:
    """Delete a document and its stored file. Deleting a missing document succeeds."""
    deleted = await documents.delete_document(db, get_storage_service(), document_id, profile)
    return DocumentDeleteResponse(document_id=document_id, deleted=deleted)


# =============================================================================
# ADMIN: DASHBOARD & ORDERS
# =============================================================================

@app.get("/api/admin/dashboard", response_model=DashboardResponse, responses=ERROR_RESPONSES, tags=["Admin"])
async def admin_dashboard(
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> DashboardResponse:
    """Get aggregated dashboard statistics."""
    return await orders.dashboard_stats(db)


@app.get(
    "/api/admin/orders",
    response_model=AdminOrderListResponse,
    responses=ERROR_RESPONSES,
    tags=["Admin"],
    summary="Admin Order Console",
)
async def admin_list_orders(
    status: Optional[OrderStatus] = Query(None),
    sort: str = Query(orders.SORT_DESC, pattern="^(asc|desc)$"),
    q: Optional[str] = Query(None, description="Search by order id, customer name or email"),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> AdminOrderListResponse:
    view = await orders.list_admin_orders(db, status=status, sort=sort, query=q)
    return AdminOrderListResponse(total=len(view), orders=view)


@app.get(
    "/api/admin/orders/export",
    response_class=Response,
    responses=ERROR_RESPONSES,
    tags=["Admin"],
    summary="Export Orders to Excel",
)
async def admin_export_orders(
    status: Optional[OrderStatus] = Query(None),
    sort: str = Query(orders.SORT_DESC, pattern="^(asc|desc)$"),
    q: Optional[str] = Query(None),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Export the filtered and sorted order view as an .xlsx workbook."""
    view = await orders.list_admin_orders(db, status=status, sort=sort, query=q)
    content = ExcelManager.export_orders(view)
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": content_disposition(ExcelManager.export_filename())},
    )


@app.patch(
    "/api/admin/orders/{order_id}/status",
    response_model=AdminOrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Admin"],
)
async def admin_update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> AdminOrderResponse:
    order = await orders.update_status(db, order_id, payload.status, admin)
    return orders.to_admin_response(order)


@app.put(
    "/api/admin/orders/{order_id}/items",
    response_model=AdminOrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Admin"],
)
async def admin_update_order_items(
    order_id: int,
    payload: OrderItemsUpdate,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> AdminOrderResponse:
    """Save edited line-item quantities of one order."""
    order = await orders.update_item_quantities(db, order_id, payload.quantities)
    return orders.to_admin_response(order)


# =============================================================================
# ADMIN: CATALOG
# =============================================================================

@app.get("/api/admin/categories", response_model=list[CategoryResponse], responses=ERROR_RESPONSES, tags=["Admin"])
async def admin_list_categories(
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[CategoryResponse]:
    return [category_response(c, n) for c, n in await catalog.list_categories(db)]


@app.post(
    "/api/admin/categories",
    response_model=CategoryResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Admin"],
)
async def admin_create_category(
    payload: CategoryCreate,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> CategoryResponse:
    return category_response(await catalog.create_category(db, payload))


@app.put(
    "/api/admin/categories/{category_id}",
    response_model=CategoryResponse,
    responses=ERROR_RESPONSES,
    tags=["Admin"],
)
async def admin_rename_category(
    category_id: int,
    payload: CategoryCreate,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> CategoryResponse:
    category = await catalog.rename_category(db, category_id, payload)
    return category_response(category, await catalog.count_products(db, category_id))


@app.delete("/api/admin/categories/{category_id}", responses=ERROR_RESPONSES, tags=["Admin"])
async def admin_delete_category(
    category_id: int,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Delete a category that no longer holds any products."""
    await catalog.delete_category(db, category_id)
    return {"success": True, "id": category_id}


@app.get("/api/admin/products", response_model=list[ProductResponse], responses=ERROR_RESPONSES, tags=["Admin"])
async def admin_list_products(
    category_id: Optional[int] = Query(None),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[ProductResponse]:
    return [ProductResponse.model_validate(p) for p in await catalog.list_products(db, category_id)]


@app.post(
    "/api/admin/products",
    response_model=ProductResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Admin"],
)
async def admin_create_product(
    payload: ProductCreate,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ProductResponse:
    return ProductResponse.model_validate(await catalog.create_product(db, payload))


@app.put(
    "/api/admin/products/{product_id}",
    response_model=ProductResponse,
    responses=ERROR_RESPONSES,
    tags=["Admin"],
)
async def admin_update_product(
    product_id: int,
    payload: ProductUpdate,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ProductResponse:
    return ProductResponse.model_validate(await catalog.update_product(db, product_id, payload))


@app.delete("/api/admin/products/{product_id}", responses=ERROR_RESPONSES, tags=["Admin"])
async def admin_delete_product(
    product_id: int,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    await catalog.delete_product(db, product_id)
    return {"success": True, "id": product_id}


# =============================================================================
# ADMIN: USERS
# =============================================================================

@app.get("/api/admin/users", response_model=list[AdminUserSummary], responses=ERROR_RESPONSES, tags=["Admin"])
async def admin_list_users(
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[AdminUserSummary]:
    """All registered users with the number of documents each has uploaded."""
    return [user_summary(p, n) for p, n in await profiles.list_users(db)]


@app.post(
    "/api/admin/users",
    response_model=ProfileResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Admin"],
)
async def admin_create_user(
    payload: AdminUserCreate,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ProfileResponse:
    return ProfileResponse.model_validate(await profiles.admin_create_user(db, payload))


@app.get("/api/admin/users/{user_id}", response_model=AdminUserDetail, responses=ERROR_RESPONSES, tags=["Admin"])
async def admin_get_user(
    user_id: str,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> AdminUserDetail:
    profile, user_documents = await profiles.get_user_detail(db, user_id)
    return AdminUserDetail(
        **ProfileResponse.model_validate(profile).model_dump(),
        documents=[DocumentResponse.model_validate(d) for d in user_documents],
    )


@app.put("/api/admin/users/{user_id}", response_model=ProfileResponse, responses=ERROR_RESPONSES, tags=["Admin"])
async def admin_update_user(
    user_id: str,
    changes: AdminProfileUpdate,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ProfileResponse:
    """Update contact fields or the admin flag of any user."""
    return ProfileResponse.model_validate(await profiles.admin_update_user(db, user_id, changes, admin))


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(FoodOrderError)
async def service_exception_handler(request: Request, exc: FoodOrderError) -> JSONResponse:
    """Map service-layer errors to their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{exc.error} on {request.url.path}: {exc.detail}")
    else:
        logger.info(f"{exc.status_code} on {request.url.path}: {exc.detail}")

    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.error, "detail": exc.detail},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level="debug" if settings.debug else "info",
    )
