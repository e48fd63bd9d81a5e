"""Package listing and management across ecosystems."""

from .manager import PackageManager
from .parsers import (
    parse_dependencies_object,
    parse_json_array,
    parse_json_lines,
    parse_package_list,
)

__all__ = [
    "PackageManager",
    "parse_package_list",
    "parse_json_array",
    "parse_dependencies_object",
    "parse_json_lines",
]
