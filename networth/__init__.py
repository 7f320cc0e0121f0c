"""
Net-Worth Ledger - Source Package

Tracks a person's net worth over time as a chronological series of dated
balance snapshots across a user-extensible set of accounts.

DESIGN PRINCIPLES:
1. Derived figures (total, gain) are never set by callers
2. Every mutation funnels through a single recalculation step
3. Destructive changes need explicit confirmation
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Net-Worth Ledger Team"
