"""Rate limiter backends for the scan endpoint (currently in-memory only)."""
