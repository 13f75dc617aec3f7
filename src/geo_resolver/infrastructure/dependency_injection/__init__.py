"""Service graph wiring."""
