"""Per-kind processing strategies."""
