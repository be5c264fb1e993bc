"""QOTD — Quote of the Day service.

Accepts short quotes over HTTP, stores them in a relational database,
serves the collection, and streams every newly accepted quote to live
WebSocket subscribers.
"""

__version__ = "0.1.0"
