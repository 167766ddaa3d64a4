# Supabase tables: apps, teams, team_members
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

apps
- id: bigint (primary key)
- slug: text (not null, unique)
- name: text (not null)
- team_id: uuid (foreign key to teams.id, nullable)
- user_id: uuid (owner, foreign key to auth.users.id)
- subdomain: text (nullable; falls back to slug)
- staging_url: text (nullable)
- staging_deployed_at: timestamp (nullable)
- deployment_url: text (nullable)
- deployed_at: timestamp (nullable)
- deployment_status: text (nullable) - values: deployed
- storage_offload_enabled: boolean (nullable; null means "inherit from team")
- env_vars: jsonb (not null, default: {})
- metadata: jsonb (not null, default: {}) - holds pending_rls list
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

teams
- id: uuid (primary key)
- name: text
- storage_offload_enabled: boolean (nullable; null means "inherit from global flag")

team_members
- team_id: uuid (foreign key to teams.id)
- user_id: uuid (foreign key to auth.users.id)
"""
