"""Adapters binding the core ports to SQLite, Telethon, the Bot API and HTTP."""
