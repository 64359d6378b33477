"""Services behind the HTTP surface."""
