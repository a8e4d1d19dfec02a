"""FastAPI application for the IPDashboard backend."""

from ipdashboard.api.aebf import AebfRepository, create_aebf_router
from ipdashboard.api.app import create_app
from ipdashboard.api.routes import create_routes
from ipdashboard.api.validation import (
    BudgetRecord,
    BudgetUploadRequest,
    ErrorResponse,
    EstimateApproveRequest,
    EstimateClearRequest,
    InvalidateResponse,
    LiveResponse,
    ProductGroupsRequest,
    ReadyResponse,
    ShallowHealthResponse,
)

__all__ = [
    "create_app",
    "create_routes",
    "create_aebf_router",
    "AebfRepository",
    "BudgetRecord",
    "BudgetUploadRequest",
    "ProductGroupsRequest",
    "EstimateApproveRequest",
    "EstimateClearRequest",
    "ShallowHealthResponse",
    "ReadyResponse",
    "LiveResponse",
    "InvalidateResponse",
    "ErrorResponse",
]
