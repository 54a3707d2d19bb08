"""
Output formatters for the Agent-SAFE Grid CLI.

Formats command results as a readable table, JSON or YAML.
"""

import json
from datetime import datetime
from typing import Any

import yaml


def format_output(data: Any, output_format: str = "table", title: str | None = None) -> str:
    """
    Format data for output in the specified format.

    Args:
        data: Data to format.
        output_format: Output format (table, json, yaml).
        title: Optional title for table format.

    Returns:
        Formatted string.
    """
    if output_format == "json":
        return json.dumps(data, indent=2, default=_json_serializer, ensure_ascii=False)
    if output_format == "yaml":
        return yaml.safe_dump(
            _convert(data), default_flow_style=False, sort_keys=False, allow_unicode=True
        )
    return format_table_view(data, title=title)


def format_table_view(data: Any, title: str | None = None) -> str:
    """Format nested dicts and lists as indented key/value lines."""
    lines: list[str] = []
    if title:
        lines.extend([title, "-" * len(title), ""])
    if isinstance(data, dict):
        lines.extend(_format_dict(data))
    elif isinstance(data, list):
        lines.extend(_format_list(data))
    else:
        lines.append(str(data))
    return "\n".join(lines)


def format_rows(headers: list[str], rows: list[list[Any]], max_col_width: int = 40) -> str:
    """
    Format rows as an ASCII table.

    Args:
        headers: Column headers.
        rows: Data rows.
        max_col_width: Maximum column width; longer cells are truncated.
    """
    cells = [[_truncate(str(c), max_col_width) for c in row] for row in rows]
    widths = [len(h) for h in headers]
    for row in cells:
        for i, cell in enumerate(row[: len(widths)]):
            widths[i] = max(widths[i], len(cell))

    row_format = " | ".join(f"{{:<{w}}}" for w in widths)
    lines = [row_format.format(*headers), "-+-".join("-" * w for w in widths)]
    for row in cells:
        padded = row + [""] * (len(headers) - len(row))
        lines.append(row_format.format(*padded[: len(headers)]))
    return "\n".join(lines)


def _format_dict(data: dict[str, Any], indent: int = 0) -> list[str]:
    lines: list[str] = []
    prefix = "  " * indent
    width = max((len(str(k)) for k in data), default=0)
    for key, value in data.items():
        key_str = str(key).ljust(width)
        if isinstance(value, dict):
            lines.append(f"{prefix}{key_str}:")
            lines.extend(_format_dict(value, indent + 1))
        elif isinstance(value, list):
            if not value:
                lines.append(f"{prefix}{key_str}: []")
            elif all(isinstance(v, (str, int, float, bool)) for v in value):
                lines.append(f"{prefix}{key_str}: [{', '.join(str(v) for v in value)}]")
            else:
                lines.append(f"{prefix}{key_str}:")
                lines.extend(_format_list(value, indent + 1))
        else:
            lines.append(f"{prefix}{key_str}: {'' if value is None else value}")
    return lines


def _format_list(data: list[Any], indent: int = 0) -> list[str]:
    lines: list[str] = []
    prefix = "  " * indent
    for i, item in enumerate(data):
        if isinstance(item, dict):
            if i > 0:
                lines.append("")
            lines.append(f"{prefix}[{i + 1}]")
            lines.extend(_format_dict(item, indent + 1))
        else:
            lines.append(f"{prefix}- {item}")
    return lines


def _json_serializer(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def _convert(data: Any) -> Any:
    if isinstance(data, datetime):
        return data.isoformat()
    if isinstance(data, dict):
        return {k: _convert(v) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [_convert(v) for v in data]
    if hasattr(data, "to_dict"):
        return _convert(data.to_dict())
    return data


def _truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."
