"""Tenant dependency resolver for FastAPI routes."""
from typing import Optional
from fastapi import Header, HTTPException


async def require_tenant(
    x_tenant_id: Optional[str] = Header(None),
) -> str:
    """
    FastAPI dependency that extracts the tenant ID from request headers.

    Args:
        x_tenant_id: Tenant ID from X-Tenant-ID header

    Returns:
        Tenant ID, stripped of surrounding whitespace

    Raises:
        HTTPException: If tenant ID is missing or blank
    """
    tenant_id = (x_tenant_id or "").strip()
    if not tenant_id:
        raise HTTPException(status_code=400, detail="X-Tenant-ID header is required")

    if len(tenant_id) > 100:
        raise HTTPException(status_code=400, detail="Invalid tenant ID format")

    return tenant_id
