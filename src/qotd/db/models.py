"""Table definitions — single source of truth for the database schema.

Column names are upper-case and preserved as declared, so rows read back
from the store come out as {"TEXT": ..., "AUTHOR": ...}.
"""

from sqlalchemy import Column, Integer, MetaData, String, Table, Text

DEFAULT_AUTHOR = "Unknown"

metadata = MetaData()

quotes = Table(
    "quotes",
    metadata,
    Column("ID", Integer, primary_key=True, autoincrement=True),
    Column("TEXT", Text, nullable=False),
    Column("AUTHOR", String(255), nullable=False, server_default=DEFAULT_AUTHOR),
)
