"""Product repository - read access to the catalog and the guarded stock decrement.

Products are owned by admin tooling. The only writes here are seeding from
billing.yaml (insert-if-missing) and decrementing stock on a first purchase.
"""

from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from billing_core.db.tables import ProductRow
from billing_core.errors import ProductNotFoundError
from billing_core.logging_config import get_logger
from billing_core.models import CatalogProduct, ProductRecord

logger = get_logger(__name__)


class ProductRepository:
    """Repository for products within one session/transaction."""

    def __init__(self, session: Session):
        self._session = session

    def get_by_id(self, product_id: int) -> ProductRecord:
        """Get product by ID.

        Raises:
            ProductNotFoundError: If product ID not found
        """
        product = self.find_by_id(product_id)
        if product is None:
            raise ProductNotFoundError(f"Product not found: {product_id}")
        return product

    def find_by_id(self, product_id: int) -> Optional[ProductRecord]:
        """Find product by ID (returns None if not found)."""
        row = self._session.get(ProductRow, product_id, populate_existing=True)
        return ProductRecord.model_validate(row) if row is not None else None

    def get_active(self, product_id: int) -> ProductRecord:
        """Get a product that can be purchased.

        Raises:
            ProductNotFoundError: If the product is missing or inactive
        """
        product = self.get_by_id(product_id)
        if not product.active:
            raise ProductNotFoundError(f"Product is not active: {product_id}")
        return product

    def list_all(self, include_inactive: bool = True) -> List[ProductRecord]:
        query = select(ProductRow).order_by(ProductRow.id).execution_options(populate_existing=True)
        if not include_inactive:
            query = query.where(ProductRow.active.is_(True))
        return [ProductRecord.model_validate(row) for row in self._session.scalars(query)]

    def decrement_stock(self, product_id: int) -> bool:
        """Take one unit of stock.

        Unlimited products always succeed without a write.

        Returns:
            True if a unit was taken (or stock is unlimited), False if sold out
        """
        product = self.get_by_id(product_id)
        if product.has_unlimited_stock:
            return True

        result = self._session.execute(
            update(ProductRow)
            .where(ProductRow.id == product_id, ProductRow.stock > 0)
            .values(stock=ProductRow.stock - 1)
            .execution_options(synchronize_session=False)
        )
        taken = int(result.rowcount or 0) == 1
        if taken:
            logger.debug("product_stock_decremented", product_id=product_id, previous_stock=product.stock)
        else:
            logger.warning("product_out_of_stock", product_id=product_id)
        return taken

    def seed_catalog(self, catalog: List[CatalogProduct]) -> int:
        """Insert catalog products whose ID does not exist yet.

        Existing rows are left untouched; admin tooling owns them after seeding.

        Returns:
            Number of products inserted
        """
        inserted = 0
        for entry in catalog:
            if self._session.get(ProductRow, entry.id) is not None:
                continue
            self._session.add(
                ProductRow(
                    id=entry.id,
                    name=entry.name,
                    price=entry.price,
                    currency=entry.currency.value,
                    period_minutes=entry.period_minutes or 0,
                    billing_type=entry.billing_type.value,
                    stock=entry.stock,
                    active=entry.active,
                )
            )
            inserted += 1
        if inserted:
            self._session.flush()
            logger.info("catalog_seeded", products_inserted=inserted)
        return inserted
