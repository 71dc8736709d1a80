"""Domain layer - errors, value objects and entities of the document database."""
