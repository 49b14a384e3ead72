from .users import User
from .accounts import FinancialAccount
from .ledger import FinancialTransaction, CashFlow, TransactionAuditEvent, FinancialPosting
from .inventory import Product, StockMovement
from .sales import Sale, SaleLine
from .purchases import Purchase, PurchaseLine
from .payroll import Payroll, PayrollConfiguration
from .expenses import Expense, Budget

__all__ = [
    'User',
    'FinancialAccount',
    'FinancialTransaction', 'CashFlow', 'TransactionAuditEvent', 'FinancialPosting',
    'Product', 'StockMovement',
    'Sale', 'SaleLine',
    'Purchase', 'PurchaseLine',
    'Payroll', 'PayrollConfiguration',
    'Expense', 'Budget',
]
