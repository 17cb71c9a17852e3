"""Backing store connection and its connectivity state machine."""
