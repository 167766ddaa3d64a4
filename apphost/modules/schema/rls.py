import logging
from typing import Optional

import httpx

from apphost.config import Settings, settings as default_settings
from apphost.core.exceptions import RLSApplyError

logger = logging.getLogger(__name__)

SENTINEL_OWNER_ID = "00000000-0000-0000-0000-000000000000"


def build_rls_sql(table_name: str) -> str:
    """Owner-isolation policies for a user-scoped table. Sentinel-owned rows stay visible."""
    return f"""-- Enable RLS
ALTER TABLE {table_name} ENABLE ROW LEVEL SECURITY;

-- Create policies for user isolation (safe to re-run)
DROP POLICY IF EXISTS "Users can view own {table_name}" ON {table_name};
CREATE POLICY "Users can view own {table_name}" ON {table_name}
  FOR SELECT USING (auth.uid()::text = user_id::text OR user_id = '{SENTINEL_OWNER_ID}'::uuid);

DROP POLICY IF EXISTS "Users can insert own {table_name}" ON {table_name};
CREATE POLICY "Users can insert own {table_name}" ON {table_name}
  FOR INSERT WITH CHECK (auth.uid()::text = user_id::text);

DROP POLICY IF EXISTS "Users can update own {table_name}" ON {table_name};
CREATE POLICY "Users can update own {table_name}" ON {table_name}
  FOR UPDATE USING (auth.uid()::text = user_id::text);

DROP POLICY IF EXISTS "Users can delete own {table_name}" ON {table_name};
CREATE POLICY "Users can delete own {table_name}" ON {table_name}
  FOR DELETE USING (auth.uid()::text = user_id::text);

-- Grant permissions
GRANT ALL ON {table_name} TO authenticated;
GRANT ALL ON {table_name} TO service_role;
"""


class RLSApplier:
    """Runs policy SQL through the app database's execute-sql edge function."""

    def __init__(self, settings: Optional[Settings] = None, http_client: Optional[httpx.Client] = None):
        self.settings = settings or default_settings
        self._http = http_client or httpx.Client(
            base_url=self.settings.app_db_url,
            timeout=self.settings.http_timeout_seconds,
        )
        self._headers = {
            "Authorization": f"Bearer {self.settings.app_db_service_key}",
            "apikey": self.settings.app_db_anon_key or self.settings.app_db_service_key,
            "Content-Type": "application/json",
        }

    def apply(self, table_name: str, sql: str) -> None:
        try:
            response = self._http.post("/functions/v1/execute-sql", json={"sql": sql}, headers=self._headers)
        except httpx.HTTPError as e:
            raise RLSApplyError(table_name, str(e)) from e
        if response.status_code != 200:
            raise RLSApplyError(table_name, f"execute-sql returned {response.status_code}: {response.text[:300]}")
        logger.info(f"[RLS] RLS enabled for {table_name}")
