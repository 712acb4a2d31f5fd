from .balances import AccountBalance, BalanceWindow, balances, windowed_balances
from .coa import ChartOfAccounts, seed_default_chart
from .documents import (cancel_draft, create_credit_note, create_draft,
                        create_expense_voucher, create_income_voucher,
                        create_journal_voucher, create_payment_voucher,
                        delete_draft, post_document, update_draft)
from .numbering import next_number, period_tag_for
from .posting import PostingResult, post_voucher, reverse_voucher
from .reports import balance_sheet, cash_flow, profit_and_loss, trial_balance
