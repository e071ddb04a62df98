"""Tests for schema file loading and SQL generation (no database needed)."""

from database.lib.schema_manager import SchemaManager
from database.schema.v1 import schema

def test_load_schema_files():
    files = SchemaManager(pool=None).load_schema_files()
    assert list(files) == [1]
    names = [table["name"] for table in files[1]["tables"]]
    assert names[:2] == ["market_listings", "active_listings"]
    assert "market_state" in names

def test_create_table_sql():
    listings = schema["tables"][0]
    sql = SchemaManager.create_table_sql(listings)
    assert sql.startswith("CREATE TABLE market_listings (")
    assert "asset_id NUMERIC(78, 0)" in sql
    assert "sold BOOL DEFAULT false NOT NULL" in sql
    assert "PRIMARY KEY (asset_id)" in sql

def test_composite_primary_key():
    roles = next(table for table in schema["tables"] if table["name"] == "role_members")
    assert "PRIMARY KEY (role, principal)" in SchemaManager.create_table_sql(roles)

def test_constraint_sql():
    active = schema["tables"][1]
    statements = SchemaManager.constraint_sql(active)
    assert statements[0] == (
        "ALTER TABLE active_listings ADD CONSTRAINT fk_active_listings_asset_id "
        "FOREIGN KEY (asset_id) REFERENCES market_listings(asset_id)"
    )
    assert statements[1] == "CREATE INDEX idx_active_listings_position ON active_listings(position)"

def test_trigger_sql():
    statements = SchemaManager.trigger_sql(schema["triggers"][0])
    assert len(statements) == 3
    assert "CREATE OR REPLACE FUNCTION touch_updated_at()" in statements[0]
    assert statements[2].endswith("FOR EACH ROW EXECUTE FUNCTION touch_updated_at()")
