# Supabase tables: app_tables, app_table_columns
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

app_tables
- id: uuid (primary key)
- app_id: bigint (foreign key to apps.id, not null)
- team_id: uuid (nullable)
- name: text (not null) - logical name, unique with app_id
- display_name: text (nullable)
- scope_type: text (not null) - values: user_scoped, app_scoped
- created_at: timestamp (default: now())

app_table_columns
- id: uuid (primary key)
- app_table_id: uuid (foreign key to app_tables.id, not null)
- name: text (not null)
- column_type: text (not null) - uuid, text, boolean, jsonb, integer, timestamptz
- is_primary: boolean (default: false)
- is_required: boolean (default: false)
- default_value: text (nullable)
- is_foreign_key: boolean (default: false)
- foreign_table: text (nullable)
"""
