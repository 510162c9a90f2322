"""Detect recurring subscription charges from mailbox payment receipts."""
