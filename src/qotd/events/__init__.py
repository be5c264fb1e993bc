"""In-process events — channel names and the publish/subscribe bus.

Learn: the write path publishes on a named channel after a row is stored;
WebSocket handlers subscribe and forward to their clients. Nothing is
persisted or replayed: a subscriber only sees events published while it
is registered.
"""
