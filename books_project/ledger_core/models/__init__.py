from .account import Account
from .auditlog import AuditLog
from .customer import Customer
from .entitymembership import Company, User
from .invoice import Invoice
from .item import Item
from .period import Period
from .sequence import DocumentSequence
from .vendor import Supplier
from .voucher import LedgerLine, Voucher, VoucherItem, VoucherLine
