"""Core domain package for codecast.

Core holds the game catalogue, code normalization, delivery and scheduling
logic without any Telegram, HTTP or storage-specific code.
"""
