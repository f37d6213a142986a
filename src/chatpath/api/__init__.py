"""http api for chatpath."""
