"""Split a build into code files (embedded in the worker) and asset files (offloaded)."""
from typing import Dict, Tuple, TypeVar
import posixpath

CODE_EXTENSIONS = frozenset({"html", "js", "mjs", "css", "json", "xml", "txt", "map"})

T = TypeVar("T")


def file_extension(path: str) -> str:
    """Lower-cased extension without the dot; empty when the basename has none."""
    name = posixpath.basename(path)
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[1].lower()


def is_code_path(path: str) -> bool:
    return file_extension(path) in CODE_EXTENSIONS


def classify_build(files: Dict[str, T]) -> Tuple[Dict[str, T], Dict[str, T]]:
    """Partition path -> content into (code_files, asset_files) by extension."""
    code_files: Dict[str, T] = {}
    asset_files: Dict[str, T] = {}
    for path, content in files.items():
        if is_code_path(path):
            code_files[path] = content
        else:
            asset_files[path] = content
    return code_files, asset_files
