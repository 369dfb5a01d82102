"""
Budget Reconciliation - Source Package

Projects recurring series (bills, paychecks, transfers) into dated
instances and reconciles imported bank activity against them.

DESIGN PRINCIPLES:
1. Engines are pure: no I/O, no hidden clock, no global state
2. The engine suggests → the user decides → the store enforces 1:1
3. History is append-only (rejections and unlinks are kept)
4. Every decision is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Budget Reconciliation Team"
