"""
Ledger Engine

Double-entry bookkeeping engine that folds dated directives into
validated account inventories, resolves balance padding and produces
hierarchical balance reports using exact Decimal arithmetic.
"""

__version__ = "1.0.0"
