"""Mailbox transports."""
