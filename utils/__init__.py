"""
Utilities Package for Uptime Engine

Logging setup, time and batching helpers, and validators.
"""
