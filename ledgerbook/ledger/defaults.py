"""
Starter chart of accounts and categories seeded into every new book.

Balances start at zero; the currency is taken from the book.
"""

from ledgerbook.models.ledger import AccountType


DEFAULT_ACCOUNTS = [
    # Asset Accounts
    {"name": "Cash Wallet", "type": AccountType.ASSET, "color": "#10b981", "icon": "wallet"},
    {"name": "Bank Account", "type": AccountType.ASSET, "color": "#3b82f6", "icon": "building-2"},
    {"name": "Savings Account", "type": AccountType.ASSET, "color": "#8b5cf6", "icon": "piggy-bank"},
    # Liability Accounts
    {"name": "Credit Card", "type": AccountType.LIABILITY, "color": "#ef4444", "icon": "credit-card"},
    {"name": "Personal Loan", "type": AccountType.LIABILITY, "color": "#f97316", "icon": "file-text"},
    # Income Accounts
    {"name": "Salary Income", "type": AccountType.INCOME, "color": "#22c55e", "icon": "trending-up"},
    {"name": "Business Income", "type": AccountType.INCOME, "color": "#06b6d4", "icon": "briefcase"},
    # Expense Accounts
    {"name": "Living Expenses", "type": AccountType.EXPENSE, "color": "#f59e0b", "icon": "home"},
    {"name": "Entertainment Expenses", "type": AccountType.EXPENSE, "color": "#ec4899", "icon": "film"},
]

DEFAULT_INCOME_CATEGORIES = [
    {"name": "Salary", "type": "income", "icon": "briefcase", "color": "#10b981"},
    {"name": "Business", "type": "income", "icon": "store", "color": "#3b82f6"},
    {"name": "Freelance", "type": "income", "icon": "laptop", "color": "#8b5cf6"},
    {"name": "Other Income", "type": "income", "icon": "coins", "color": "#f59e0b"},
]

DEFAULT_EXPENSE_CATEGORIES = [
    {"name": "Groceries", "type": "expense", "icon": "shopping-cart", "color": "#ef4444"},
    {"name": "Utilities", "type": "expense", "icon": "zap", "color": "#f59e0b"},
    {"name": "Rent", "type": "expense", "icon": "home", "color": "#8b5cf6"},
    {"name": "Transportation", "type": "expense", "icon": "car", "color": "#3b82f6"},
    {"name": "Entertainment", "type": "expense", "icon": "film", "color": "#ec4899"},
    {"name": "Dining", "type": "expense", "icon": "utensils", "color": "#f97316"},
    {"name": "Healthcare", "type": "expense", "icon": "heart-pulse", "color": "#06b6d4"},
]
