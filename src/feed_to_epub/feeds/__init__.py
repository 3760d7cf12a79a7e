"""Feed parsing, polling and the per-cycle driver."""
