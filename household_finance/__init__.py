"""
Household Finance - Source Package

The financial state engine behind a shared household finance tracker:
entity models, the remote store adapter, the state container, and the
calculators and reconciliation protocol built on top of them.

DESIGN PRINCIPLES:
1. Money is Decimal, never float
2. Remote first, local last: no local change survives a failed write
3. One snapshot, explicit transitions
4. Every settlement must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Household Finance Team"
