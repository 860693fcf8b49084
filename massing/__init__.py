"""Site-plan building detection and per-floor massing."""
