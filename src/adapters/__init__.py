"""Adapters package for codecast.

Adapters implement the core ports on top of concrete transports: HTTP
sources, SQLite storage and Telegram delivery.
"""
