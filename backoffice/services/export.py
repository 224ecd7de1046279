"""Export renderer: record sets -> downloadable CSV / JSON payloads."""

import csv
import io
import json
from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from backoffice.services._helpers import Record, file_timestamp, now_iso
from backoffice.services._types import OperationLogDict
from backoffice.services.errors import BulkValidationError
from db.enums import ExportFormat

logger = structlog.get_logger(__name__)

_MEDIA_TYPES: dict[ExportFormat, str] = {
    ExportFormat.CSV: "text/csv",
    ExportFormat.JSON: "application/json",
}


def parse_export_format(value: object) -> ExportFormat:
    """Requested format, CSV when unspecified."""
    if value is None or value == "":
        return ExportFormat.CSV
    try:
        return ExportFormat(str(value).lower())
    except ValueError as e:
        raise BulkValidationError(f'Export format "{value}" is not supported') from e


def _csv_cell(value: object) -> object:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return value


@dataclass
class ExportPayload:
    content: str
    format: ExportFormat
    filename: str
    record_count: int

    @property
    def media_type(self) -> str:
        return f"{_MEDIA_TYPES[self.format]}; charset=utf-8"

    @property
    def byte_count(self) -> int:
        return len(self.content.encode("utf-8"))


class ExportRenderer:
    """Stateless CSV / JSON serialization shared by bulk export and history export."""

    @staticmethod
    def to_csv(rows: Sequence[Record]) -> str:
        """Header from the first row's keys, one line per row, no trailing newline.

        Cells containing a comma, quote or line break are quoted with inner
        quotes doubled (standard CSV quoting).
        """
        if not rows:
            return ""
        buf = io.StringIO()
        writer = csv.DictWriter(
            buf,
            fieldnames=list(rows[0].keys()),
            extrasaction="ignore",
            restval="",
            lineterminator="\n",
        )
        writer.writeheader()
        for row in rows:
            writer.writerow({k: _csv_cell(v) for k, v in row.items()})
        content: str = buf.getvalue()
        return content[:-1] if content.endswith("\n") else content

    @staticmethod
    def to_json(
        rows: Sequence[Record],
        export_type: str,
        exported_by: str,
        filters: object = None,
    ) -> str:
        document: dict[str, object] = {
            "export_type": export_type,
            "exported_at": now_iso(),
            "exported_by": exported_by,
            "record_count": len(rows),
            "filters": filters if filters is not None else [],
            "data": list(rows),
        }
        return json.dumps(document, indent=2, default=str)

    def render(
        self,
        rows: Sequence[Record],
        fmt: ExportFormat,
        export_type: str,
        filename_stem: str,
        exported_by: str,
        filters: object = None,
    ) -> ExportPayload:
        match fmt:
            case ExportFormat.CSV:
                content: str = self.to_csv(rows)
            case ExportFormat.JSON:
                content = self.to_json(rows, export_type, exported_by, filters)

        payload = ExportPayload(
            content=content,
            format=fmt,
            filename=f"{filename_stem}-{file_timestamp()}.{fmt.value}",
            record_count=len(rows),
        )
        logger.info(
            "Rendered export",
            export_type=export_type,
            format=fmt.value,
            record_count=payload.record_count,
            bytes=payload.byte_count,
        )
        return payload

    def render_records(
        self,
        table: str,
        records: Sequence[Record],
        fmt: ExportFormat,
        exported_by: str,
        filters: object = None,
    ) -> ExportPayload:
        return self.render(
            records,
            fmt,
            export_type=f"bulk_{table}",
            filename_stem=f"bulk-export-{table}",
            exported_by=exported_by,
            filters=filters,
        )

    def render_history(
        self,
        entries: Sequence[OperationLogDict],
        fmt: ExportFormat,
        exported_by: str,
    ) -> ExportPayload:
        return self.render(
            [dict(e) for e in entries],
            fmt,
            export_type="bulk_operation_history",
            filename_stem="bulk-operations-history",
            exported_by=exported_by,
        )
