"""
Shared helpers: path derivation, the remote circuit breaker, structured event
logging and human-readable formatting.
"""
