"""
Observability module for Pilot.

Structured logging with per-run correlation ids. JSON output in
production, colored text everywhere else.
"""
