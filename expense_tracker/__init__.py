"""
Expense Tracker - Source Package

A shared expense tracker for a couple: record purchases, compare monthly
spend against the shared account, and scan receipts with vision models
to pre-fill new entries.

DESIGN PRINCIPLES:
1. AI suggests → Human confirms → System saves
2. Extraction is best-effort and never blocks manual entry
3. No silent corrections on user input
4. Every user action is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Expense Tracker Team"
