"""
Family Fund Ledger - Source Package

Tracks the money Papa sets aside for Mummy and Vaibhav: what each account
should hold, what it actually holds, and how much spending is still
waiting to be reimbursed.

DESIGN PRINCIPLES:
1. Every balance change is explained by a ledger or history record
2. Fail early, fail visibly
3. No silent corrections
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Family Fund Team"
