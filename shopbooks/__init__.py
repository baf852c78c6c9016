"""
Shopbooks - Core Package

Bookkeeping engine for small shops: goal tracking against sales data,
monthly profit waterfall across goals, and the per-party credit ledger
that lives inside a record's note field.

DESIGN PRINCIPLES:
1. The ledger note is the source of truth; stored balances are derived
2. Recompute, never patch: every ledger mutation replays the chain
3. Manual goals are never touched by automation
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Shopbooks Team"
