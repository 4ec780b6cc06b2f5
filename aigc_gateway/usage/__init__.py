from .ledger import UsageEntry, UsageLedger

__all__ = ["UsageEntry", "UsageLedger"]
