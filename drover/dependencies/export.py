"""Serialise dependency export rows as CSV or JSON."""

from __future__ import annotations

import csv
import dataclasses as dc
import io
import typing as typ

import msgspec

from drover.errors import BadRequestError

from .models import EXPORT_COLUMNS, ExportFormat

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .graph import DependencyGraphEngine
    from .models import ExportRow

_MEDIA_TYPES = {
    ExportFormat.CSV: "text/csv",
    ExportFormat.JSON: "application/json",
}


@dc.dataclass(frozen=True, slots=True)
class DependencyExport:
    """A rendered export ready to be returned as a download."""

    content: bytes
    media_type: str
    filename: str
    row_count: int


def render_csv(rows: cabc.Iterable[ExportRow]) -> str:
    """Render rows as CSV with a header line and ``\\n`` line endings.

    Fields holding a comma, quote or newline are quoted and embedded quotes
    doubled.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(EXPORT_COLUMNS)
    writer.writerows(
        (
            row.repository,
            row.dependency_full_name,
            row.direction,
            row.dependency_type,
            row.dependency_url,
        )
        for row in rows
    )
    return buffer.getvalue()


def parse_format(value: str | None) -> ExportFormat:
    """Return the export format, defaulting to CSV.

    Raises
    ------
    BadRequestError
        If ``value`` names an unsupported format.

    """
    if not value:
        return ExportFormat.CSV
    try:
        return ExportFormat(value.strip().lower())
    except ValueError as exc:
        msg = f"Unsupported export format: {value} (expected csv or json)"
        raise BadRequestError(msg, field="format") from exc


def render_export(
    rows: list[ExportRow],
    export_format: ExportFormat,
    *,
    repository: str | None = None,
) -> DependencyExport:
    """Render rows and choose the download file name."""
    if export_format is ExportFormat.JSON:
        content = msgspec.json.encode(rows)
    else:
        content = render_csv(rows).encode("utf-8")
    stem = (
        f"{repository.replace('/', '-')}-dependencies"
        if repository
        else "dependencies"
    )
    return DependencyExport(
        content=content,
        media_type=_MEDIA_TYPES[export_format],
        filename=f"{stem}.{export_format}",
        row_count=len(rows),
    )


async def export_dependencies(
    engine: DependencyGraphEngine,
    export_format: ExportFormat | str | None = None,
    *,
    repository: str | None = None,
    dependency_types: cabc.Sequence[str] | None = None,
) -> DependencyExport:
    """Export local dependencies for the estate or a single repository.

    Parameters
    ----------
    engine
        Graph engine used to read the edges.
    export_format
        ``csv`` (default) or ``json``.
    repository
        When given, export only this repository's own outgoing and incoming
        local edges. Otherwise every edge is exported in both directions.
    dependency_types
        Restrict an estate-wide export to these dependency types.

    Raises
    ------
    BadRequestError
        If the format is not supported.
    NotFoundError
        If ``repository`` is unknown.

    """
    resolved = (
        export_format
        if isinstance(export_format, ExportFormat)
        else parse_format(export_format)
    )
    if repository:
        rows = await engine.repository_export_rows(repository)
    else:
        rows = await engine.export_rows(dependency_types)
    return render_export(rows, resolved, repository=repository)
