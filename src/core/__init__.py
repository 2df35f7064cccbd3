"""Core domain package for the relay.

Core contains routing, album collection, the send queue, text rewriting and
the identity map without any Telegram-specific code, keeping the relay logic
testable with fakes.
"""
