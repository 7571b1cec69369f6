"""Settings and token metadata, loaded once at boot."""
