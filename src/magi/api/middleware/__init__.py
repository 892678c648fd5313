"""Request-boundary policies: origin checks and rate limiting."""
