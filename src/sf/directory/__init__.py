"""Course and identity directory capabilities."""
