from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict

from ..deps import require_owner
from ..hub import get_hub
from ..validation import PromoType

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_owner)])


# Catalog records are open-ended: terminals attach their own fields and the
# coordinator stores whatever it receives.
class ProductIn(BaseModel):
    model_config = ConfigDict(extra="allow")


class CategoryIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    description: Optional[str] = None


class PromotionIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    # Optional so an update can send only the fields it changes.
    promo_type: Optional[PromoType] = None
    is_active: Optional[bool] = None


@router.get("/products")
def list_products():
    return get_hub().admin.list_products()


@router.get("/products/{product_id}")
def get_product(product_id: str):
    """Look up a product by id or barcode in any store's catalog."""
    return get_hub().admin.get_product(product_id)


@router.post("/products")
def save_product(data: ProductIn):
    """Create or update a product in the master catalog; stores pick it up on their next pull."""
    return get_hub().admin.upsert_product(data.model_dump())


@router.delete("/products/{product_id}")
def delete_product(product_id: str):
    return get_hub().admin.delete_product(product_id)


@router.get("/categories")
def list_categories():
    return get_hub().admin.list_categories()


@router.post("/categories")
def save_category(data: CategoryIn):
    return get_hub().admin.upsert_category(data.model_dump(exclude_unset=True))


@router.delete("/categories/{category_id}")
def delete_category(category_id: str):
    return get_hub().admin.delete_category(category_id)


@router.get("/promotions")
def list_promotions():
    return get_hub().admin.list_promotions()


@router.post("/promotions")
def save_promotion(data: PromotionIn):
    return get_hub().admin.upsert_promotion(data.model_dump(exclude_unset=True))


@router.delete("/promotions/{promotion_id}")
def delete_promotion(promotion_id: str):
    return get_hub().admin.delete_promotion(promotion_id)


@router.get("/stats")
def admin_stats():
    return get_hub().admin.stats()
