"""
Error taxonomy for the deployment and provisioning core.

Fatal errors stop a deployment at the stage that raised them. RLSApplyError is
recoverable: the provisioner records the policy as pending and carries on.
"""
from typing import Optional


class AppHostError(Exception):
    """Base class for apphost errors"""


class ConfigurationError(AppHostError):
    """Required credentials or endpoints are missing"""


class BuildError(AppHostError):
    """The external build collaborator failed"""


class SizeLimitExceeded(AppHostError):
    def __init__(self, size_bytes: int, limit_bytes: int):
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
        self.size_mb = round(size_bytes / 1024 / 1024, 2)
        limit_mb = limit_bytes // (1024 * 1024)
        super().__init__(f"Worker script too large: {self.size_mb:.2f} MB (limit: {limit_mb}MB)")


class UploadError(AppHostError):
    """Asset or bundle upload failed at the transport or API level"""


class EdgeApiError(AppHostError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RLSApplyError(AppHostError):
    def __init__(self, table: str, message: str):
        self.table = table
        super().__init__(f"RLS apply failed for {table}: {message}")


class ProvisioningError(AppHostError):
    """Catch-all for schema provisioning failures"""


class InvalidTableName(ProvisioningError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Invalid table name '{name}': must start with a letter, contain only "
            "letters, digits and underscores, and be at most 50 characters"
        )
