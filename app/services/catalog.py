# =========================================================
# FARM CATALOG
# Read-only view over a farm's products, the only trusted
# source of unit prices for market orders.
# =========================================================

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session, joinedload

from app.models.farm import Farm
from app.models.products import Product


@dataclass(frozen=True)
class CatalogEntry:
    product_id: int
    name: str
    unit_price: Decimal
    amount_to_sell: int | None = None


def display_name(product: Product) -> str:
    if product.inventory is not None and product.inventory.name:
        return product.inventory.name
    if product.description:
        return product.description
    return f"Product {product.id}"


class FarmCatalog:
    def __init__(self, db: Session, farm_id: int):
        self.db = db
        self.farm_id = farm_id

    def get_farm(self) -> Farm | None:
        return self.db.query(Farm).filter(Farm.id == self.farm_id).first()

    def _products(self):
        return (
            self.db.query(Product)
            .options(joinedload(Product.inventory))
            .filter(Product.farm_id == self.farm_id)
        )

    def lookup(self, product_ids) -> dict[int, CatalogEntry]:
        """Current price and name for each id that belongs to this farm."""
        ids = set(product_ids)
        if not ids:
            return {}

        products = self._products().filter(Product.id.in_(ids)).all()

        return {
            product.id: CatalogEntry(
                product_id=product.id,
                name=display_name(product),
                unit_price=Decimal(str(product.price)),
                amount_to_sell=product.amount_to_sell,
            )
            for product in products
        }

    def list_products(self) -> list[Product]:
        return self._products().order_by(Product.created_at.desc(), Product.id.desc()).all()

    def get_product(self, product_id: int) -> Product | None:
        return self._products().filter(Product.id == product_id).first()
