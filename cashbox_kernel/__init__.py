"""
Cashbox Kernel - shift reconciliation core

A cash-drawer closing engine with:
- Locale-aware amount and date normalization
- Pure cash/bank variance computation
- Branch-partitioned, two-tier row storage (local active rows, archived closed rows)
"""

__version__ = "0.1.0"
