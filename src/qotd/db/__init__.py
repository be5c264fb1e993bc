"""Relational storage: table definitions, engine factory, and the gateway."""
