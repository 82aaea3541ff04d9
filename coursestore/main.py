import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from coursestore.database import create_db_and_tables
from coursestore.config import settings
from coursestore.exceptions import CourseStoreError, ProviderError
from coursestore.routes import (
    admin_analytics,
    admin_notifications,
    admin_orders,
    checkout,
    health,
    invoices,
    user_orders,
    webhooks,
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Run DB creation ONLY in local
    if settings.ENV == "local":
        create_db_and_tables()
    yield

app = FastAPI(title="Course Store API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.FRONTEND_URL,
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CourseStoreError)
async def course_store_error_handler(request: Request, exc: CourseStoreError):
    content = {"status": exc.status, "message": exc.message}

    if isinstance(exc, ProviderError):
        logger.error("Provider failure on %s %s: %s", request.method, request.url.path, exc.message)
        # upstream detail is for admins only
        if getattr(request.state, "principal_role", None) != "admin":
            content["message"] = exc.public_message
        content["retryable"] = exc.retryable

    return JSONResponse(status_code=exc.status_code, content=content)


app.include_router(checkout.router, prefix="/payments", tags=["Payments"])
app.include_router(webhooks.router, prefix="/payments", tags=["Payment Webhooks"])
app.include_router(user_orders.router, prefix="/payments", tags=["Orders"])
app.include_router(invoices.router, prefix="/payments", tags=["Invoices"])
app.include_router(admin_orders.router, prefix="/admin/orders", tags=["Admin Orders"])
app.include_router(admin_analytics.router, prefix="/admin/statistics", tags=["Admin Statistics"])
app.include_router(admin_notifications.router, prefix="/admin/notifications", tags=["Admin Notifications"])
app.include_router(health.router, prefix="/health", tags=["Health"])


@app.get("/")
def root():
    return {
        "payment_endpoints": [
            "/payments/checkout", "/payments/wallet/capture",
            "/payments/webhook/{provider}"
        ],
        "order_endpoints": [
            "/payments/orders", "/payments/orders/{order_id}",
            "/payments/orders/{order_id}/cancel",
            "/payments/invoices/{order_id}", "/payments/invoices/{order_id}/download"
        ],
        "admin_endpoints": [
            "/admin/orders", "/admin/orders/{order_id}/events",
            "/admin/orders/{order_id}/confirm-bank-transfer",
            "/admin/orders/{order_id}/status", "/admin/orders/{order_id}/refund",
            "/admin/statistics", "/admin/statistics/export", "/admin/notifications"
        ],
        "health": ["/health/check"]
    }
