"""Local store: ledger, run log and migrations."""
