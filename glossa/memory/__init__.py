"""Bounded queues, the message store and on-disk persistence."""
