"""Read-only product catalog plus ad hoc inference."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from app.models.catalog import DEFAULT_CATALOG
from app.models.lead import ProductRecommendation
from app.services.inference.engine import infer_products

router = APIRouter()


class InferRequest(BaseModel):
    text: str = Field(min_length=1)
    industry: str | None = None


@router.get("")
async def list_products() -> dict:
    return DEFAULT_CATALOG.as_dict()


@router.get("/category/{category}")
async def products_by_category(category: str) -> dict:
    """Category names use underscores in place of spaces ("Industrial_Fuels")."""
    return DEFAULT_CATALOG.by_category(category.replace("_", " "))


@router.post("/infer", response_model=list[ProductRecommendation])
async def infer(payload: InferRequest) -> list[ProductRecommendation]:
    return infer_products(payload.text, payload.industry, catalog=DEFAULT_CATALOG)


@router.get("/{code}")
async def get_product(code: str) -> dict:
    product = DEFAULT_CATALOG.find_product(code)
    if product is None:
        raise HTTPException(status_code=404, detail=f"Unknown product: {code}")
    return {"code": product.code, **product.as_dict()}
