"""
Module: warehouse_kernel.models.product
Responsibility: Minimal product row consumed by the kernel.  The catalog
    system owns products; the kernel reads only ``unit_cbm``.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from decimal import Decimal

from sqlalchemy import CheckConstraint, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from warehouse_kernel.db.base import TrackedBase


class Product(TrackedBase):
    """
    A stockable product.

    Guarantees:
        - sku is unique.
        - unit_cbm >= 0 (volume of one unit in cubic metres).
    """

    __tablename__ = "products"

    __table_args__ = (
        UniqueConstraint("sku", name="uq_product_sku"),
        CheckConstraint("unit_cbm >= 0", name="ck_product_unit_cbm_non_negative"),
    )

    sku: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    unit_cbm: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    def __repr__(self) -> str:
        return f"<Product {self.sku}: unit_cbm={self.unit_cbm}>"
