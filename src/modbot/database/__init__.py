"""
Database package for ModBot.

Provides the single long-lived aiosqlite connection, schema creation and the
SQLite implementation of warning-state persistence.

Public API:
    - db_connection: Shared ConnectionManager instance
    - SchemaManager: Table and index creation
    - SqliteWarningPersistence: WarningStore persistence and decision log
"""
