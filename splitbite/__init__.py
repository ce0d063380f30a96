"""SplitBite: receipt extraction, bill splitting and a per-restaurant spend ledger."""
