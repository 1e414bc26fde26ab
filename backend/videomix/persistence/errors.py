"""
Storage errors for the videomix database.
"""


class PersistenceError(Exception):
    """A database call failed (locked file, disk error, constraint)."""

    pass


class SchemaError(PersistenceError):
    """The database schema is newer than this build or cannot be opened."""

    pass
