"""API routes."""

from fastapi import APIRouter

from salecompass.routes import catalog, csv_import, imports

api_router = APIRouter()

# Sale-sheet import (upload, missing products, confirmation)
api_router.include_router(csv_import.router, prefix="/v1/csv-import", tags=["csv-import"])

# Import history
api_router.include_router(imports.router, prefix="/v1/imports", tags=["imports"])

# Catalog lookups and price upserts
api_router.include_router(catalog.router, prefix="/v1/catalog", tags=["catalog"])
