"""
Loan Ledger Engine

Micro-loan bookkeeping for a small business back-office: amortization
schedules, payment distribution across installments, aggregate recomputation,
late-fee assessment and capital-pool tracking. All money math uses Decimal.
"""

__version__ = "1.0.0"
