# Supabase table: app_files
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:
- id: uuid (primary key)
- app_id: bigint (foreign key to apps.id, not null)
- path: text (not null) - unique with app_id
- content: text (nullable once the file lives only in R2)
- r2_content_key: text (nullable) - object key in the files bucket
- content_hash: text (nullable) - sha256 of the content
- size_bytes: integer (nullable)
- storage_location: text (not null, default: 'database') - values: database, hybrid, r2
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
"""
