"""
Catalog of categories and products.

Read access is public; every mutation here is called from admin-only routes.
"""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Category, Product
from app.schemas import CategoryCreate, ProductCreate, ProductUpdate
from app.services.errors import ConflictError, InvalidRequestError, NotFoundError

logger = logging.getLogger(__name__)


# =============================================================================
# CATEGORIES
# =============================================================================

async def list_categories(db: AsyncSession) -> list[tuple[Category, int]]:
    """Categories sorted by name, each with the number of products in it."""
    result = await db.execute(
        select(Category, func.count(Product.id))
        .outerjoin(Product, Product.category_id == Category.id)
        .group_by(Category.id)
        .order_by(Category.name, Category.id)
    )
    return [(category, count) for category, count in result.all()]


async def get_category(db: AsyncSession, category_id: int) -> Category:
    category = await db.get(Category, category_id)
    if category is None:
        raise NotFoundError(f"Category #{category_id} not found")
    return category


async def create_category(db: AsyncSession, payload: CategoryCreate) -> Category:
    category = Category(name=payload.name.strip())
    db.add(category)
    await db.commit()
    await db.refresh(category)
    logger.info(f"Category #{category.id} created: {category.name}")
    return category


async def rename_category(db: AsyncSession, category_id: int, payload: CategoryCreate) -> Category:
    category = await get_category(db, category_id)
    category.name = payload.name.strip()
    await db.commit()
    await db.refresh(category)
    return category


async def count_products(db: AsyncSession, category_id: int) -> int:
    result = await db.execute(
        select(func.count(Product.id)).where(Product.category_id == category_id)
    )
    return result.scalar() or 0


async def delete_category(db: AsyncSession, category_id: int) -> None:
    """Delete an empty category. Categories that still hold products are kept."""
    category = await get_category(db, category_id)

    product_count = await count_products(db, category_id)
    if product_count:
        raise ConflictError(
            f"Category #{category_id} still has {product_count} product(s); "
            "move or delete them first"
        )

    await db.delete(category)
    await db.commit()
    logger.info(f"Category #{category_id} deleted")


# =============================================================================
# PRODUCTS
# =============================================================================

async def list_products(db: AsyncSession, category_id: Optional[int] = None) -> list[Product]:
    query = select(Product).order_by(Product.name, Product.id)
    if category_id is not None:
        query = query.where(Product.category_id == category_id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_product(db: AsyncSession, product_id: int) -> Product:
    product = await db.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product #{product_id} not found")
    return product


async def _require_category(db: AsyncSession, category_id: int) -> None:
    if await db.get(Category, category_id) is None:
        raise InvalidRequestError(f"Category #{category_id} does not exist")


async def create_product(db: AsyncSession, payload: ProductCreate) -> Product:
    await _require_category(db, payload.category_id)

    product = Product(**payload.model_dump())
    db.add(product)
    await db.commit()
    await db.refresh(product)
    logger.info(f"Product #{product.id} created: {product.name}")
    return product


async def update_product(db: AsyncSession, product_id: int, payload: ProductUpdate) -> Product:
    product = await get_product(db, product_id)
    data = payload.model_dump(exclude_unset=True)

    if data.get("category_id") is not None:
        await _require_category(db, data["category_id"])

    for field, value in data.items():
        if value is None and field in ("name", "unit", "category_id"):
            continue
        setattr(product, field, value)

    await db.commit()
    await db.refresh(product)
    return product


async def delete_product(db: AsyncSession, product_id: int) -> None:
    """
    Delete a product. Existing order lines keep their captured name and unit;
    their product reference is cleared by the foreign key.
    """
    product = await get_product(db, product_id)
    await db.delete(product)
    await db.commit()
    logger.info(f"Product #{product_id} deleted")
