import re

from apphost.core.exceptions import InvalidTableName

MAX_TABLE_NAME_LENGTH = 50

_LOGICAL_NAME = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*$")


def is_valid_logical_name(name: str) -> bool:
    return bool(name) and len(name) <= MAX_TABLE_NAME_LENGTH and bool(_LOGICAL_NAME.match(name))


def validate_logical_name(name: str) -> str:
    if not is_valid_logical_name(name):
        raise InvalidTableName(name)
    return name


def scoped_name(logical_name: str, app_id) -> str:
    """Physical table name; the app id prefix is what keeps tenants apart."""
    return f"app_{app_id}_{validate_logical_name(logical_name)}"
