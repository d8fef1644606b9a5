from __future__ import annotations

import csv
import datetime as dt
import io
from typing import Any, Dict, Iterable, Sequence

from opcua_dashboard.services.normalization import NormalizedVariable

NODE_DATA_HEADERS = ["Node Name", "Node ID", "Current Value", "Data Type", "Quality", "Timestamp"]
VARIABLE_HEADERS = ["ID", "Type", "PLC Register", "OPC UA Node", "Description", "Data Type", "Parent ID", "Bit Position"]


def _render(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow(["" if v is None else v for v in row])
    return buf.getvalue()


def node_data_csv(node_data: Iterable[Dict[str, Any]]) -> str:
    return _render(
        NODE_DATA_HEADERS,
        (
            [
                n.get("node_name"),
                n.get("node_id"),
                n.get("current_value"),
                n.get("data_type") or "",
                n.get("quality") or "",
                n.get("timestamp"),
            ]
            for n in node_data
        ),
    )


def variables_csv(variables: Iterable[NormalizedVariable]) -> str:
    return _render(
        VARIABLE_HEADERS,
        (
            [
                v.id,
                v.type.value,
                v.plc_reg_add,
                v.opcua_reg_add,
                v.description,
                v.data_type,
                v.parent_id,
                v.bit_position,
            ]
            for v in variables
        ),
    )


def export_filename(prefix: str, today: dt.date | None = None) -> str:
    day = today or dt.datetime.now(dt.timezone.utc).date()
    return f"{prefix}_{day.isoformat()}.csv"
