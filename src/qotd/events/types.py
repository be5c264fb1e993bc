"""Channel name constants.

Centralizing channel names prevents typos between publishers and
subscribers.
"""

# Quotes accepted by the write path; payload is {"author", "text"}.
DB_UPDATES = "db.updates"
