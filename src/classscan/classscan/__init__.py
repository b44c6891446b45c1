"""ClassScan attendance engine.

This package is organized by feature modules (tokens, policies, sessions,
attendance, fraud, excuses, offline, ...) with a thin Flask controller layer
and service/repository layers underneath.
"""
