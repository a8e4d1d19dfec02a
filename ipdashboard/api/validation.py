"""Request and response validation schemas for the IPDashboard API."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class BudgetRecord(BaseModel):
    """One budget or estimate row as uploaded by the planning team."""

    model_config = ConfigDict(populate_by_name=True)

    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)
    customer_name: str | None = Field(None, alias="customerName")
    sales_rep_name: str | None = Field(None, alias="salesRepName")
    country_name: str | None = Field(None, alias="countryName")
    product_group: str | None = Field(None, alias="productGroup")
    material: str | None = None
    process: str | None = None
    values_type: Literal["AMOUNT", "KGS", "MORM"] = Field(..., alias="valuesType")
    values: float


class BudgetUploadRequest(BaseModel):
    """Request schema for POST /api/aebf/upload-budget."""

    model_config = ConfigDict(populate_by_name=True)

    division: str = Field(..., description="Division (FP or HC)")
    budget_year: int = Field(..., alias="budgetYear", ge=2000, le=2100)
    upload_mode: Literal["replace", "append"] = Field("replace", alias="uploadMode")
    uploaded_by: str = Field(..., alias="uploadedBy", min_length=1)
    records: list[BudgetRecord] = Field(..., min_length=1)


class ProductGroupsRequest(BaseModel):
    """Request schema for POST /api/aebf/budget-product-groups."""

    model_config = ConfigDict(populate_by_name=True)

    division: str = Field(..., description="Division (FP or HC)")
    budget_year: int = Field(..., alias="budgetYear", ge=2000, le=2100)
    sales_rep: str | None = Field(
        None, alias="salesRep", description="Sales rep name, or __ALL__"
    )


class EstimateApproveRequest(BaseModel):
    """Request schema for POST /api/aebf/estimate/approve."""

    model_config = ConfigDict(populate_by_name=True)

    division: str = Field(..., description="Division (FP or HC)")
    year: int = Field(..., ge=2000, le=2100)
    approved_by: str = Field(..., alias="approvedBy", min_length=1)
    records: list[BudgetRecord] = Field(..., min_length=1)


class EstimateClearRequest(BaseModel):
    """Request schema for POST /api/aebf/estimate/clear."""

    division: str = Field(..., description="Division (FP or HC)")
    year: int = Field(..., ge=2000, le=2100)


class ShallowHealthResponse(BaseModel):
    """Response schema for GET /api/health."""

    status: str = Field(..., description="Always healthy when the process answers")
    timestamp: str = Field(..., description="ISO timestamp")
    uptime: int = Field(..., description="Seconds since start")
    service: str = Field(..., description="Service name")


class ReadyResponse(BaseModel):
    """Response schema for GET /api/ready."""

    ready: bool
    error: str | None = None


class LiveResponse(BaseModel):
    """Response schema for GET /api/live."""

    alive: bool = True


class InvalidateResponse(BaseModel):
    """Response schema for DELETE /api/cache."""

    pattern: str = Field(..., description="Pattern that was applied")
    deleted: int = Field(..., description="Number of cache keys removed")


class ErrorResponse(BaseModel):
    """Error response schema."""

    error: str = Field(..., description="Error code or summary")
    detail: str | None = Field(None, description="Error details")
    details: dict[str, Any] | None = Field(None, description="Structured context")
