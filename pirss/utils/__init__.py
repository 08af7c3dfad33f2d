"""
PiRSS Utilities
===============

Logging, exceptions and URL validation shared across components.
"""
