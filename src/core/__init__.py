"""Core domain package for share-file-bot.

Core contains update routing, callback matching, session flows and access
control without any Telethon, HTTP or storage-specific code, keeping the
business logic portable and testable with fakes.
"""
