# Overview: Model package exports for the posting engine.

from .tenancy import Organization, Store, Currency, FinancialYear
from .accounting import Account, TaxCode, LedgerEntry
from .inventory import (
    ProductCategory, Product, ProductStore, ProductBatch, ProductSerialNumber,
    ProductTransaction, PriceHistory,
)
from .customers import Customer, LoyaltyConfig, LoyaltyCard, LoyaltyTransaction
from .documents import (
    SalesInvoice, SalesInvoiceLine, ProformaInvoice, ProformaInvoiceLine, SalesTransactionRecord,
)

__all__ = [
    'Organization', 'Store', 'Currency', 'FinancialYear',
    'Account', 'TaxCode', 'LedgerEntry',
    'ProductCategory', 'Product', 'ProductStore', 'ProductBatch', 'ProductSerialNumber',
    'ProductTransaction', 'PriceHistory',
    'Customer', 'LoyaltyConfig', 'LoyaltyCard', 'LoyaltyTransaction',
    'SalesInvoice', 'SalesInvoiceLine', 'ProformaInvoice', 'ProformaInvoiceLine', 'SalesTransactionRecord',
]
