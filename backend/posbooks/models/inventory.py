# Overview: SQLAlchemy models for products, stock pools and inventory movements.

from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date
from .columns import money_column, quantity_column, rate_column
from .enums import LedgerSource, LotStatus, ProductType, SerialStatus, enum_type


class ProductCategory(db.Model):
    """
    Product category with the accounts used when its products are sold.

    Category accounts take precedence over the product's own account ids.
    """
    __tablename__ = "product_categories"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_product_categories_org_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)

    cogs_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)
    asset_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)
    income_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)

    cogs_account = db.relationship("Account", foreign_keys=[cogs_account_id])
    asset_account = db.relationship("Account", foreign_keys=[asset_account_id])
    income_account = db.relationship("Account", foreign_keys=[income_account_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "cogs_account_id": self.cogs_account_id,
            "asset_account_id": self.asset_account_id,
            "income_account_id": self.income_account_id,
        }


class Product(db.Model):
    """
    Product master data, org-scoped.

    average_cost is held in the system currency. Stock lives in ProductStore
    (bulk), ProductBatch (lots) and ProductSerialNumber (units), never here.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("org_id", "code", name="uq_products_org_code"),
        db.Index("ix_products_org_name", "org_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=True, index=True)

    code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    product_type = db.Column(enum_type(ProductType), nullable=False, default=ProductType.GOODS)
    unit = db.Column(db.String(16), nullable=True)

    average_cost = money_column()
    selling_price = money_column()

    # Fallbacks when the category does not name an account
    cogs_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)
    asset_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)
    income_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("ProductCategory", backref=db.backref("products", lazy=True))

    @property
    def is_service(self) -> bool:
        return self.product_type == ProductType.SERVICES

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "category_id": self.category_id,
            "code": self.code,
            "name": self.name,
            "product_type": self.product_type.value if self.product_type else None,
            "unit": self.unit,
            "average_cost": self.average_cost,
            "selling_price": self.selling_price,
            "cogs_account_id": self.cogs_account_id,
            "asset_account_id": self.asset_account_id,
            "income_account_id": self.income_account_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductStore(db.Model):
    """Bulk on-hand quantity for one product in one store."""
    __tablename__ = "product_stores"
    __table_args__ = (
        db.UniqueConstraint("product_id", "store_id", name="uq_product_stores_product_store"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    quantity = quantity_column()

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "store_id": self.store_id,
            "quantity": self.quantity,
        }


class ProductBatch(db.Model):
    """
    Batch/lot of a product in a store, sharing one expiry date.

    LIFECYCLE: active -> sold when current_quantity reaches zero.
    """
    __tablename__ = "product_batches"
    __table_args__ = (
        db.UniqueConstraint("product_id", "store_id", "batch_number", name="uq_product_batches_product_store_batch"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    batch_number = db.Column(db.String(64), nullable=False)
    expiry_date = db.Column(db.Date, nullable=True)
    current_quantity = quantity_column()
    total_sold = quantity_column()
    status = db.Column(enum_type(LotStatus), nullable=False, default=LotStatus.ACTIVE)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "store_id": self.store_id,
            "batch_number": self.batch_number,
            "expiry_date": to_iso_date(self.expiry_date),
            "current_quantity": self.current_quantity,
            "total_sold": self.total_sold,
            "status": self.status.value,
        }


class ProductSerialNumber(db.Model):
    """
    A single serialized unit. current_quantity is 1 while in stock and 0
    once sold.
    """
    __tablename__ = "product_serial_numbers"
    __table_args__ = (
        db.UniqueConstraint("product_id", "store_id", "serial_number", name="uq_product_serials_product_store_serial"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    serial_number = db.Column(db.String(128), nullable=False)
    current_quantity = db.Column(db.Integer, nullable=False, default=1)
    status = db.Column(enum_type(SerialStatus), nullable=False, default=SerialStatus.ACTIVE)

    sold_at = db.Column(db.DateTime(timezone=True), nullable=True)
    sales_invoice_id = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "store_id": self.store_id,
            "serial_number": self.serial_number,
            "current_quantity": self.current_quantity,
            "status": self.status.value,
            "sold_at": to_utc_z(self.sold_at),
            "sales_invoice_id": self.sales_invoice_id,
        }


class ProductTransaction(db.Model):
    """
    Append-only stock movement written when a document line leaves stock.

    quantity_out is positive; unit_price is in the document currency and
    average_cost in the system currency.
    """
    __tablename__ = "product_transactions"
    __table_args__ = (
        db.Index("ix_product_transactions_product_store", "product_id", "store_id"),
        db.Index("ix_product_transactions_source", "source", "source_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)

    source = db.Column(enum_type(LedgerSource, length=32), nullable=False)
    source_id = db.Column(db.Integer, nullable=False)
    reference_number = db.Column(db.String(64), nullable=True)
    transaction_date = db.Column(db.Date, nullable=False)

    quantity_out = quantity_column()
    unit_price = money_column()
    unit_price_equivalent = money_column()
    average_cost = money_column()
    batch_number = db.Column(db.String(64), nullable=True)
    serial_numbers = db.Column(db.JSON, nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "store_id": self.store_id,
            "source": self.source.value,
            "source_id": self.source_id,
            "reference_number": self.reference_number,
            "transaction_date": to_iso_date(self.transaction_date),
            "quantity_out": self.quantity_out,
            "unit_price": self.unit_price,
            "unit_price_equivalent": self.unit_price_equivalent,
            "average_cost": self.average_cost,
            "batch_number": self.batch_number,
            "serial_numbers": self.serial_numbers or [],
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class PriceHistory(db.Model):
    """Selling price deviations recorded when documents are posted."""
    __tablename__ = "price_history"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    source = db.Column(enum_type(LedgerSource, length=32), nullable=False)
    source_id = db.Column(db.Integer, nullable=False)
    reference_number = db.Column(db.String(64), nullable=True)

    old_selling_price = money_column()
    new_selling_price = money_column()
    quantity = quantity_column()
    currency_id = db.Column(db.Integer, db.ForeignKey("currencies.id"), nullable=True)
    exchange_rate = rate_column()

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "source": self.source.value,
            "source_id": self.source_id,
            "reference_number": self.reference_number,
            "old_selling_price": self.old_selling_price,
            "new_selling_price": self.new_selling_price,
            "quantity": self.quantity,
            "currency_id": self.currency_id,
            "exchange_rate": self.exchange_rate,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
