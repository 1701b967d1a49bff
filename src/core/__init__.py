"""
Core package for cross-cutting concerns.

Settings (config), structured logging with request correlation (logging) and
bearer token decoding plus response security headers (security) are shared
by the API layer and every order, payment and notification service.
"""
