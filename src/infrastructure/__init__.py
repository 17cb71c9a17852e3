"""Infrastructure layer: integrations with systems outside the process.

The only one is the backing store, whose connection is opened at startup,
supervised for the life of the process and released on shutdown.
"""
