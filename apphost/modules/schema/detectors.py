"""
Heuristic detection of the tables an app needs, from its generated source.

Detectors run in order (explicit scoped references first, keywords second)
over files sorted by path, and results are deduplicated by logical name with
the first occurrence kept. Detection can over- or under-report; it is kept
conservative and reproducible rather than clever.
"""
import re
from typing import Dict, Iterable, List, Optional, Sequence

from apphost.modules.schema.schemas import ColumnSpec, TableConfig

_SCOPED_REFERENCE = re.compile(r"""\.from\(['"`]app_\d+_(\w+)['"`]\)""")

TABLE_TEMPLATES: Dict[str, List[ColumnSpec]] = {
    "todos": [
        ColumnSpec(name="text", type="text", required=True),
        ColumnSpec(name="completed", type="boolean", default=False),
    ],
    "notes": [
        ColumnSpec(name="title", type="text"),
        ColumnSpec(name="content", type="text", required=True),
        ColumnSpec(name="tags", type="jsonb"),
    ],
    "posts": [
        ColumnSpec(name="title", type="text", required=True),
        ColumnSpec(name="content", type="text", required=True),
        ColumnSpec(name="published", type="boolean", default=False),
        ColumnSpec(name="slug", type="text"),
    ],
}

GENERIC_COLUMNS = [
    ColumnSpec(name="name", type="text"),
    ColumnSpec(name="data", type="jsonb"),
]


def build_table_config(name: str, user_scoped: bool = True) -> TableConfig:
    columns = TABLE_TEMPLATES.get(name, GENERIC_COLUMNS)
    return TableConfig(name=name, user_scoped=user_scoped, columns=[c.model_copy() for c in columns])


class TableDetector:
    """Finds logical table names in one source file."""

    def detect(self, path: str, content: str) -> List[str]:
        raise NotImplementedError


class ScopedReferenceDetector(TableDetector):
    """`.from('app_<id>_<name>')` calls in client code."""

    def detect(self, path: str, content: str) -> List[str]:
        return _SCOPED_REFERENCE.findall(content)


class KeywordDetector(TableDetector):
    """Domain words implying a well-known table; at most one table per file."""

    KEYWORDS = (
        (("todo",), "todos"),
        (("note",), "notes"),
        (("post", "blog"), "posts"),
    )

    def detect(self, path: str, content: str) -> List[str]:
        text = content.lower()
        for words, table in self.KEYWORDS:
            if any(word in text for word in words):
                return [table]
        return []


DEFAULT_DETECTORS: Sequence[TableDetector] = (ScopedReferenceDetector(), KeywordDetector())


def detect_tables(
    sources: Dict[str, str],
    detectors: Optional[Iterable[TableDetector]] = None,
) -> List[TableConfig]:
    seen = set()
    tables: List[TableConfig] = []
    for detector in detectors or DEFAULT_DETECTORS:
        for path in sorted(sources):
            for name in detector.detect(path, sources[path] or ""):
                if name in seen:
                    continue
                seen.add(name)
                tables.append(build_table_config(name))
    return tables
