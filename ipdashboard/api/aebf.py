"""AEBF (Actual / Estimate / Budget / Forecast) routes.

Read routes are cached per request shape under ``aebf:<DIVISION>:``;
write routes invalidate the affected key family after their transaction
commits and before they respond, so an immediate re-query never sees the
stale response.
"""

import logging
import math
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from ipdashboard.api.validation import (
    BudgetRecord,
    BudgetUploadRequest,
    EstimateApproveRequest,
    EstimateClearRequest,
    ProductGroupsRequest,
)
from ipdashboard.cache import CachedRoute, CacheTTL, cache_response, invalidate_cache
from ipdashboard.cache.routing import Invalidator
from ipdashboard.core.database import Database, rows_affected

logger = logging.getLogger(__name__)

VALID_DIVISIONS = ("FP", "HC")

AEBF_FAMILY = "aebf:*"

_RECORD_COLUMNS = (
    "division, type, year, month, customername, salesrepname, countryname, "
    "productgroup, material, process, values_type, values, uploaded_by"
)
_RECORD_INSERT_ARGS = "$1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13"


def normalize_division(division: str | None) -> str:
    """Upper-cased division code.

    Raises:
        HTTPException: 400 if the division is missing or unknown
    """
    code = (division or "").strip().upper()
    if code not in VALID_DIVISIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid division {division!r}. Expected one of {list(VALID_DIVISIONS)}",
        )
    return code


def division_query(division: str = Query(..., description="Division (FP or HC)")) -> str:
    """FastAPI dependency validating the ``division`` query parameter."""
    return normalize_division(division)


def division_scope(request: Request, body: Any) -> str | None:
    """Cache key segment holding the normalized division.

    Every spelling a client sends (``Fp``, `` FP``) lands in the same
    ``aebf:FP:...`` family, which is what estimate writes invalidate.
    Unknown divisions get no segment; those requests fail validation and
    are never stored.
    """
    division = request.query_params.get("division")
    if division is None and isinstance(body, dict):
        division = body.get("division")
    if not isinstance(division, str):
        return None
    try:
        return normalize_division(division)
    except HTTPException:
        return None


def division_pattern(division: str) -> str:
    """Invalidation pattern for every cached response scoped to a division."""
    return f"aebf:{normalize_division(division)}:*"


def _tables(division: str) -> dict[str, str]:
    code = division.lower()
    return {
        "data": f"{code}_data_excel",
        "sales_rep_budget": f"{code}_sales_rep_budget",
    }


def _record_row(
    division: str, record_type: str, record: BudgetRecord, user: str
) -> tuple[Any, ...]:
    return (
        division,
        record_type,
        record.year,
        record.month,
        record.customer_name,
        record.sales_rep_name,
        record.country_name,
        record.product_group,
        record.material,
        record.process,
        record.values_type,
        record.values,
        user,
    )


class AebfRepository:
    """Queries over the per-division AEBF tables.

    Table names derive from a validated division code only; every user
    value travels as a bind parameter.
    """

    def __init__(self, database: Database):
        self.database = database

    async def budget_years(self, division: str) -> list[int]:
        table = _tables(division)["sales_rep_budget"]
        rows = await self.database.fetch(
            f"""
            SELECT DISTINCT budget_year
            FROM {table}
            WHERE UPPER(division) = $1 AND UPPER(type) = 'BUDGET'
            ORDER BY budget_year DESC
            """,
            division,
        )
        return [row["budget_year"] for row in rows]

    async def budget(
        self,
        division: str,
        year: int | None = None,
        month: int | None = None,
        search: str | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> dict[str, Any]:
        table = _tables(division)["data"]
        conditions = ["division = $1", "UPPER(type) = 'BUDGET'"]
        params: list[Any] = [division]

        if year is not None:
            params.append(year)
            conditions.append(f"year = ${len(params)}")
        if month is not None:
            params.append(month)
            conditions.append(f"month = ${len(params)}")
        if search:
            params.append(f"%{search.upper()}%")
            n = len(params)
            conditions.append(
                f"(UPPER(customername) LIKE ${n} OR UPPER(salesrepname) LIKE ${n}"
                f" OR UPPER(countryname) LIKE ${n} OR UPPER(productgroup) LIKE ${n})"
            )

        where = " AND ".join(conditions)
        total = await self.database.fetchval(
            f"SELECT COUNT(*) FROM {table} WHERE {where}", *params
        )
        offset = (page - 1) * page_size
        records = await self.database.fetch(
            f"""
            SELECT id, division, type, year, month, customername, salesrepname,
                   countryname, productgroup, material, process, values_type,
                   values, updated_at, uploaded_by
            FROM {table}
            WHERE {where}
            ORDER BY year DESC, month, customername
            LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
            """,
            *params,
            page_size,
            offset,
        )
        total = int(total or 0)
        return {
            "records": records,
            "pagination": {
                "page": page,
                "pageSize": page_size,
                "total": total,
                "totalPages": math.ceil(total / page_size) if total else 0,
            },
        }

    async def actual(
        self, division: str, year: int | None = None, month: int | None = None
    ) -> list[dict[str, Any]]:
        table = _tables(division)["data"]
        conditions = ["division = $1", "UPPER(type) = 'ACTUAL'"]
        params: list[Any] = [division]
        if year is not None:
            params.append(year)
            conditions.append(f"year = ${len(params)}")
        if month is not None:
            params.append(month)
            conditions.append(f"month = ${len(params)}")

        return await self.database.fetch(
            f"""
            SELECT year, month, customername, salesrepname, countryname,
                   productgroup, material, process, values_type, values
            FROM {table}
            WHERE {" AND ".join(conditions)}
            ORDER BY year DESC, month, customername
            """,
            *params,
        )

    async def filter_options(
        self, division: str, record_type: str | None = None
    ) -> dict[str, list[Any]]:
        table = _tables(division)["data"]
        conditions = ["UPPER(division) = $1"]
        params: list[Any] = [division]
        if record_type:
            params.append(record_type.upper())
            conditions.append(f"UPPER(type) = ${len(params)}")

        rows = await self.database.fetch(
            f"""
            SELECT
              ARRAY_AGG(DISTINCT year ORDER BY year) FILTER (WHERE year IS NOT NULL) AS year,
              ARRAY_AGG(DISTINCT month ORDER BY month) FILTER (WHERE month IS NOT NULL) AS month,
              ARRAY_AGG(DISTINCT salesrepname ORDER BY salesrepname)
                FILTER (WHERE salesrepname IS NOT NULL) AS salesrepname,
              ARRAY_AGG(DISTINCT customername ORDER BY customername)
                FILTER (WHERE customername IS NOT NULL) AS customername,
              ARRAY_AGG(DISTINCT countryname ORDER BY countryname)
                FILTER (WHERE countryname IS NOT NULL) AS countryname,
              ARRAY_AGG(DISTINCT productgroup ORDER BY productgroup)
                FILTER (WHERE productgroup IS NOT NULL) AS productgroup,
              ARRAY_AGG(DISTINCT material ORDER BY material)
                FILTER (WHERE material IS NOT NULL) AS material,
              ARRAY_AGG(DISTINCT values_type ORDER BY values_type)
                FILTER (WHERE values_type IS NOT NULL) AS values_type
            FROM {table}
            WHERE {" AND ".join(conditions)}
            """,
            *params,
        )
        row = rows[0] if rows else {}
        return {column: list(values or []) for column, values in row.items()}

    async def budget_product_groups(
        self, division: str, budget_year: int, sales_rep: str | None = None
    ) -> list[dict[str, Any]]:
        table = _tables(division)["sales_rep_budget"]
        params: list[Any] = [division, budget_year]
        rep_filter = ""
        if sales_rep and sales_rep != "__ALL__":
            params.append(sales_rep)
            rep_filter = "AND UPPER(TRIM(salesrepname)) = UPPER(TRIM($3))"

        rows = await self.database.fetch(
            f"""
            SELECT TRIM(productgroup) AS product_group, values_type,
                   SUM(values) AS total_values
            FROM {table}
            WHERE UPPER(division) = UPPER($1)
              AND budget_year = $2
              {rep_filter}
              AND UPPER(type) = 'BUDGET'
              AND values_type IN ('AMOUNT', 'KGS', 'MORM')
              AND productgroup IS NOT NULL
              AND TRIM(productgroup) != ''
            GROUP BY TRIM(productgroup), values_type
            ORDER BY TRIM(productgroup), values_type
            """,
            *params,
        )

        groups: dict[str, dict[str, Any]] = {}
        for row in rows:
            group = groups.setdefault(
                row["product_group"],
                {"productGroup": row["product_group"], "AMOUNT": 0.0, "KGS": 0.0, "MORM": 0.0},
            )
            group[row["values_type"]] = float(row["total_values"] or 0)
        return list(groups.values())

    async def replace_budget(
        self,
        division: str,
        budget_year: int,
        records: list[BudgetRecord],
        uploaded_by: str,
        mode: str = "replace",
    ) -> int:
        """Write budget rows in one transaction. Returns rows inserted."""
        table = _tables(division)["data"]
        statements: list[tuple[str, list[Any]]] = []
        if mode == "replace":
            statements.append(
                (
                    f"DELETE FROM {table} WHERE division = $1 "
                    "AND UPPER(type) = 'BUDGET' AND year = $2",
                    [division, budget_year],
                )
            )
        rows = [_record_row(division, "Budget", r, uploaded_by) for r in records]
        await self.database.execute_many_in_transaction(
            statements,
            batch=(
                f"INSERT INTO {table} ({_RECORD_COLUMNS}) VALUES ({_RECORD_INSERT_ARGS})",
                rows,
            ),
        )
        return len(rows)

    async def approve_estimate(
        self,
        division: str,
        year: int,
        records: list[BudgetRecord],
        approved_by: str,
    ) -> int:
        """Replace estimate rows for the months covered by ``records``."""
        table = _tables(division)["data"]
        months = sorted({record.month for record in records})
        rows = [_record_row(division, "Estimate", r, approved_by) for r in records]
        await self.database.execute_many_in_transaction(
            [
                (
                    f"DELETE FROM {table} WHERE division = $1 "
                    "AND UPPER(type) = 'ESTIMATE' AND year = $2 AND month = ANY($3)",
                    [division, year, months],
                )
            ],
            batch=(
                f"INSERT INTO {table} ({_RECORD_COLUMNS}) VALUES ({_RECORD_INSERT_ARGS})",
                rows,
            ),
        )
        return len(rows)

    async def clear_estimates(self, division: str, year: int) -> int:
        table = _tables(division)["data"]
        status_line = await self.database.execute(
            f"DELETE FROM {table} WHERE UPPER(division) = $1 "
            "AND UPPER(type) = 'ESTIMATE' AND year = $2",
            division,
            year,
        )
        return rows_affected(status_line)


def get_repository(request: Request) -> AebfRepository:
    """FastAPI dependency: repository over the app's database pool."""
    database: Database | None = getattr(request.app.state, "database", None)
    if database is None or database.pool is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured",
        )
    return AebfRepository(database)


def create_aebf_router() -> APIRouter:
    """Create the AEBF router (mounted under ``/api``)."""
    router = APIRouter(prefix="/aebf", tags=["aebf"], route_class=CachedRoute)

    @router.get("/budget-years")
    @cache_response(ttl=CacheTTL.VERY_LONG, key_scope=division_scope)
    async def budget_years(
        division: str = Depends(division_query),
        repo: AebfRepository = Depends(get_repository),
    ) -> dict[str, Any]:
        """Budget years available for a division."""
        years = await repo.budget_years(division)
        return {"success": True, "years": years}

    @router.get("/budget")
    @cache_response(ttl=CacheTTL.LONG, key_scope=division_scope)
    async def budget(
        division: str = Depends(division_query),
        budget_year: int | None = Query(None, alias="budgetYear"),
        month: int | None = Query(None, ge=1, le=12),
        search: str | None = Query(None, max_length=100),
        page: int = Query(1, ge=1),
        page_size: int = Query(50, alias="pageSize", ge=1, le=1000),
        repo: AebfRepository = Depends(get_repository),
    ) -> dict[str, Any]:
        """Paginated budget rows with optional filters."""
        data = await repo.budget(division, budget_year, month, search, page, page_size)
        return {"success": True, "data": data}

    @router.get("/actual")
    @cache_response(ttl=CacheTTL.MEDIUM, key_scope=division_scope)
    async def actual(
        division: str = Depends(division_query),
        year: int | None = Query(None),
        month: int | None = Query(None, ge=1, le=12),
        repo: AebfRepository = Depends(get_repository),
    ) -> dict[str, Any]:
        """Actual rows for a division, optionally filtered by period."""
        records = await repo.actual(division, year, month)
        return {"success": True, "data": {"records": records}}

    @router.get("/filter-options")
    @cache_response(ttl=CacheTTL.LONG, key_scope=division_scope)
    async def filter_options(
        division: str = Depends(division_query),
        record_type: str | None = Query(None, alias="type"),
        repo: AebfRepository = Depends(get_repository),
    ) -> dict[str, Any]:
        """Distinct values of every filterable column."""
        options = await repo.filter_options(division, record_type)
        return {"success": True, "data": {"filterOptions": options}}

    @router.post("/budget-product-groups")
    @cache_response(ttl=CacheTTL.MEDIUM, methods=("POST",), key_scope=division_scope)
    async def budget_product_groups(
        body: ProductGroupsRequest,
        repo: AebfRepository = Depends(get_repository),
    ) -> dict[str, Any]:
        """Budget totals per product group (read-only POST report)."""
        division = normalize_division(body.division)
        groups = await repo.budget_product_groups(
            division, body.budget_year, body.sales_rep
        )
        return {"success": True, "data": {"productGroups": groups}}

    @router.post("/upload-budget")
    async def upload_budget(
        body: BudgetUploadRequest,
        repo: AebfRepository = Depends(get_repository),
        invalidate: Invalidator = Depends(invalidate_cache),
    ) -> dict[str, Any]:
        """Store uploaded budget rows, then drop every cached AEBF response."""
        division = normalize_division(body.division)
        inserted = await repo.replace_budget(
            division, body.budget_year, body.records, body.uploaded_by, body.upload_mode
        )
        cleared = await invalidate(AEBF_FAMILY)
        logger.info(
            f"Budget upload for {division} {body.budget_year}: "
            f"{inserted} rows ({body.upload_mode}), {cleared} cache entries cleared"
        )
        return {
            "success": True,
            "message": "Budget data uploaded successfully",
            "mode": body.upload_mode,
            "recordsInserted": inserted,
            "cacheEntriesCleared": cleared,
        }

    @router.post("/estimate/approve")
    async def approve_estimate(
        body: EstimateApproveRequest,
        repo: AebfRepository = Depends(get_repository),
        invalidate: Invalidator = Depends(invalidate_cache),
    ) -> dict[str, Any]:
        """Save approved estimates and invalidate the division's responses."""
        division = normalize_division(body.division)
        inserted = await repo.approve_estimate(
            division, body.year, body.records, body.approved_by
        )
        cleared = await invalidate(division_pattern(division))
        return {
            "success": True,
            "data": {"inserted": inserted, "cacheEntriesCleared": cleared},
        }

    @router.post("/estimate/clear")
    async def clear_estimate(
        body: EstimateClearRequest,
        repo: AebfRepository = Depends(get_repository),
        invalidate: Invalidator = Depends(invalidate_cache),
    ) -> dict[str, Any]:
        """Delete estimates for a year and invalidate the division's responses."""
        division = normalize_division(body.division)
        deleted = await repo.clear_estimates(division, body.year)
        cleared = await invalidate(division_pattern(division))
        return {
            "success": True,
            "data": {
                "deletedCount": deleted,
                "cacheEntriesCleared": cleared,
                "message": f"Cleared {deleted} estimate records for {body.year}",
            },
        }

    return router
