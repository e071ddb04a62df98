"""Database schema management module.

This module handles database schema versioning, validation, and migrations.
It supports creating tables, indexes, foreign keys, and triggers from the
declarative vN.py files in database/schema/.
"""
import importlib
import logging
from pathlib import Path
from typing import Dict, Any, Optional

from ..exceptions import DatabaseSchemaError

logger = logging.getLogger(__name__)

SCHEMA_PACKAGE = 'database.schema'
SCHEMA_DIR = Path(__file__).resolve().parent.parent / 'schema'

class SchemaManager:
    """Manages database schema versioning and migrations."""

    def __init__(self, pool, schema_dir: Optional[Path] = None) -> None:
        """Initialize schema manager.

        Args:
            pool: Database connection pool
            schema_dir: Directory containing schema version files
        """
        self.pool = pool
        self._schema_dir = Path(schema_dir) if schema_dir else SCHEMA_DIR
        self.current_version = 0
        self._schema_files: Dict[int, Dict[str, Any]] = {}

    async def initialize(self, force_recreate: bool = False) -> None:
        """Initialize schema management.

        Creates the schema version table if it doesn't exist and runs any pending migrations.

        Args:
            force_recreate: Drop every table and install the latest schema from scratch

        Raises:
            DatabaseSchemaError: If schema initialization fails or no valid schema files are found
        """
        try:
            async with self.pool.acquire() as conn:
                await conn.execute('''
                    CREATE TABLE IF NOT EXISTS schema_version (
                        version INT8 PRIMARY KEY,
                        applied_at TIMESTAMP NOT NULL DEFAULT now()
                    )
                ''')

                if force_recreate:
                    await conn.execute('DELETE FROM schema_version')

                row = await conn.fetchrow(
                    'SELECT version FROM schema_version ORDER BY version DESC LIMIT 1'
                )
                self.current_version = row['version'] if row else 0

            schema_files = self.load_schema_files()
            if not schema_files:
                logger.error("No valid schema files found in schema directory")
                raise DatabaseSchemaError("No valid schema files found in schema directory")

            await self._apply_migrations(schema_files)

        except DatabaseSchemaError:
            raise
        except Exception as e:
            logger.error(f"Schema initialization failed: {e}")
            raise DatabaseSchemaError(f"Failed to initialize schema: {e}")

    def load_schema_files(self) -> Dict[int, Dict[str, Any]]:
        """Load all schema version files.

        Returns:
            Dict mapping version numbers to schema definitions

        Raises:
            DatabaseSchemaError: If a schema file is malformed
        """
        schema_files = {}

        if not self._schema_dir.exists():
            return schema_files

        for file in self._schema_dir.glob('v*.py'):
            try:
                version = int(file.stem[1:])
            except ValueError:
                logger.warning(f"Invalid schema filename: {file}")
                continue

            module = importlib.import_module(f"{SCHEMA_PACKAGE}.{file.stem}")
            if not hasattr(module, 'schema'):
                raise DatabaseSchemaError(
                    f"Schema file {file} missing 'schema' definition"
                )

            schema = module.schema
            if schema['version'] != version:
                raise DatabaseSchemaError(
                    f"Schema version mismatch in {file}: "
                    f"Expected v{version}, got v{schema['version']}"
                )
            schema_files[version] = schema

        self._schema_files = dict(sorted(schema_files.items()))
        return self._schema_files

    async def _apply_migrations(self, schema_files: Dict[int, Dict[str, Any]]) -> None:
        """Apply any pending schema migrations.

        Args:
            schema_files: Dict mapping version numbers to schema definitions
        """
        latest_version = max(schema_files.keys())
        if self.current_version >= latest_version:
            logger.info("Schema is up to date")
            return

        logger.info(
            f"Updating schema from version {self.current_version} to {latest_version}"
        )

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                if self.current_version == 0:
                    await self._create_fresh_schema(conn, schema_files[latest_version])
                else:
                    for version in range(self.current_version + 1, latest_version + 1):
                        if version not in schema_files:
                            continue
                        for migration in schema_files[version].get('migrations', []):
                            await conn.execute(migration)
                        await conn.execute(
                            'INSERT INTO schema_version (version) VALUES ($1)',
                            version
                        )
                        logger.info(f"Successfully migrated to version {version}")

        self.current_version = latest_version

    async def _create_fresh_schema(self, conn, schema: Dict[str, Any]) -> None:
        """Create a fresh schema installation.

        Args:
            conn: Database connection
            schema: Latest schema definition
        """
        tables = schema.get('tables', [])

        # Dependents first so CASCADE is not needed for our own tables
        for table in reversed(tables):
            await conn.execute(f'DROP TABLE IF EXISTS {table["name"]} CASCADE')

        for table in tables:
            await conn.execute(self.create_table_sql(table))
            logger.info(f"Created table {table['name']}")

        for table in tables:
            for statement in self.constraint_sql(table):
                await conn.execute(statement)

        for trigger in schema.get('triggers', []):
            for statement in self.trigger_sql(trigger):
                await conn.execute(statement)
            logger.info(f"Created trigger {trigger['name']} on {trigger['table']}")

        await conn.execute(
            'INSERT INTO schema_version (version) VALUES ($1)',
            schema['version']
        )
        logger.info(f"Successfully created fresh schema version {schema['version']}")

    @staticmethod
    def create_table_sql(table: Dict[str, Any]) -> str:
        """Build the CREATE TABLE statement for a table definition (no foreign keys)."""
        columns = []
        constraints = []

        for col in table['columns']:
            col_def = f"{col['name']} {col['type']}"

            if col.get('primary_key'):
                constraints.append(f"PRIMARY KEY ({col['name']})")
            elif col.get('unique'):
                constraints.append(f"UNIQUE ({col['name']})")

            if 'default' in col:
                col_def += f" DEFAULT {col['default']}"

            if col.get('nullable') is False:
                col_def += " NOT NULL"

            columns.append(col_def)

        if isinstance(table.get('primary_key'), list):
            constraints.append(f"PRIMARY KEY ({', '.join(table['primary_key'])})")

        return f"CREATE TABLE {table['name']} ({', '.join(columns + constraints)})"

    @staticmethod
    def constraint_sql(table: Dict[str, Any]) -> list:
        """Build foreign key and index statements for a table definition."""
        statements = []
        for fk in table.get('foreign_keys', []):
            statements.append(
                f"ALTER TABLE {table['name']} "
                f"ADD CONSTRAINT fk_{table['name']}_{fk['columns'][0]} "
                f"FOREIGN KEY ({', '.join(fk['columns'])}) "
                f"REFERENCES {fk['references']}"
            )
        for idx in table.get('indexes', []):
            unique = 'UNIQUE ' if idx.get('unique') else ''
            where = f" WHERE {idx['where']}" if 'where' in idx else ''
            statements.append(
                f"CREATE {unique}INDEX {idx['name']} "
                f"ON {table['name']}({', '.join(idx['columns'])}){where}"
            )
        return statements

    @staticmethod
    def trigger_sql(trigger: Dict[str, Any]) -> list:
        """Build the trigger function and trigger statements."""
        return [
            f"CREATE OR REPLACE FUNCTION {trigger['function_name']}() "
            f"RETURNS TRIGGER AS $${trigger['function_body']}$$ LANGUAGE plpgsql",
            f"DROP TRIGGER IF EXISTS {trigger['name']} ON {trigger['table']}",
            f"CREATE TRIGGER {trigger['name']} "
            f"{trigger['timing']} {trigger['event']} ON {trigger['table']} "
            f"FOR EACH ROW EXECUTE FUNCTION {trigger['function_name']}()",
        ]
