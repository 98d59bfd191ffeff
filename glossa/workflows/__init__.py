"""Language evolution workflows driven by the server."""
