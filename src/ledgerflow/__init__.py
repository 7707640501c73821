"""Transaction import and reconciliation for an envelope-budgeting ledger."""

__version__ = "0.1.0"
