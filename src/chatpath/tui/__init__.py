"""terminal ui for chatpath."""
