"""Tabular exports (CSV, JSON, XLSX) of cached entity lists and comparisons."""
from __future__ import annotations

import csv
import io
import json
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill

from spacescope.scoring import CATEGORIES, score_categories
from spacescope.utils import flag, num

EXPORT_FORMATS = ("csv", "json", "xlsx")

MEDIA_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "json": "application/json",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def _yes_no(record: dict, key: str) -> str:
    return "Yes" if flag(record, key) else "No"


def _pct(record: dict, key: str) -> str:
    value = num(record, key)
    return f"{value:.1f}%" if value else ""


def _score(record: dict, missing: str = "") -> str:
    if record.get("overallCapabilityScore") is None:
        return missing
    return f"{num(record, 'overallCapabilityScore'):.1f}"


def _or_blank(record: dict, key: str) -> Any:
    value = record.get(key)
    return "" if value is None else value


# ---------------------------------------------------------------------------
# Row builders
# ---------------------------------------------------------------------------


def country_rows(countries: list[dict]) -> list[dict[str, Any]]:
    return [
        {
            "Name": c.get("name", ""),
            "Code": c.get("isoCode", ""),
            "Region": c.get("region") or "",
            "SpaceAgency": c.get("spaceAgencyName") or "",
            "Founded": c.get("spaceAgencyFounded") or "",
            "TotalLaunches": int(num(c, "totalLaunches")),
            "SuccessRate": _pct(c, "launchSuccessRate"),
            "HumanSpaceflight": _yes_no(c, "humanSpaceflightCapable"),
            "IndependentLaunch": _yes_no(c, "independentLaunchCapable"),
            "ReusableRockets": _yes_no(c, "reusableRocketCapable"),
            "DeepSpace": _yes_no(c, "deepSpaceCapable"),
            "OverallScore": _score(c),
        }
        for c in countries
    ]


def engine_rows(engines: list[dict]) -> list[dict[str, Any]]:
    return [
        {
            "Name": e.get("name", ""),
            "Country": e.get("countryName") or e.get("origin") or "",
            "Manufacturer": e.get("manufacturer") or "",
            "Propellant": e.get("propellant") or "",
            "Cycle": e.get("cycle") or "",
            "ThrustKN": _or_blank(e, "thrustKn"),
            "SpecificImpulseSec": _or_blank(e, "specificImpulseS"),
            "ChamberPressureBar": _or_blank(e, "chamberPressureBar"),
            "TWR": _or_blank(e, "thrustToWeightRatio"),
            "Reusable": _yes_no(e, "reusable"),
            "Status": e.get("status") or "",
            "FirstFlight": _or_blank(e, "firstFlightYear"),
        }
        for e in engines
    ]


def vehicle_rows(vehicles: list[dict]) -> list[dict[str, Any]]:
    return [
        {
            "Name": v.get("name", ""),
            "Variant": v.get("variant") or "",
            "Country": v.get("countryName") or "",
            "Manufacturer": v.get("manufacturer") or "",
            "Status": v.get("status") or "",
            "FirstFlight": _or_blank(v, "firstFlight"),
            "TotalLaunches": int(num(v, "totalLaunches")),
            "SuccessRate": _pct(v, "successRate"),
            "PayloadToLEO_kg": _or_blank(v, "payloadToLeoKg"),
            "PayloadToGTO_kg": _or_blank(v, "payloadToGtoKg"),
            "HeightM": _or_blank(v, "heightMeters"),
            "Stages": _or_blank(v, "stages"),
            "Reusable": _yes_no(v, "reusable"),
            "HumanRated": _yes_no(v, "humanRated"),
        }
        for v in vehicles
    ]


def _column_names(countries: list[dict]) -> list[str]:
    """Country names, suffixed with the ISO code (or id) where a name repeats."""
    names = [c.get("name", "") for c in countries]
    out = []
    for name, c in zip(names, countries):
        label = name
        if names.count(name) > 1:
            label = f"{name} ({c.get('isoCode') or c.get('id')})"
        while label in out:
            label += "*"
        out.append(label)
    return out


def comparison_rows(countries: list[dict]) -> list[dict[str, Any]]:
    """One row per capability category, one column per country, plus an overall row."""
    names = _column_names(countries)
    scores = [score_categories(c) for c in countries]
    rows: list[dict[str, Any]] = []
    for cat in CATEGORIES:
        row: dict[str, Any] = {"Category": cat.label}
        for name, s in zip(names, scores):
            row[name] = round(s.get(cat.key, 0.0), 1)
        rows.append(row)
    overall: dict[str, Any] = {"Category": "Overall Score"}
    for name, c in zip(names, countries):
        overall[name] = _score(c, missing="N/A")
    rows.append(overall)
    return rows


ROW_BUILDERS = {
    "countries": country_rows,
    "engines": engine_rows,
    "vehicles": vehicle_rows,
}


# ---------------------------------------------------------------------------
# Serializers
# ---------------------------------------------------------------------------


def to_csv(rows: list[dict[str, Any]]) -> str:
    """CSV with a header taken from the first row's keys; empty input gives ``""``."""
    if not rows:
        return ""
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=list(rows[0].keys()), lineterminator="\n", extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        writer.writerow({k: ("" if v is None else v) for k, v in row.items()})
    return buf.getvalue()


def to_json(rows: list[dict[str, Any]]) -> str:
    return json.dumps(rows, ensure_ascii=False, indent=2)


def to_xlsx(rows: list[dict[str, Any]], sheet_title: str = "Export") -> bytes:
    """Single-sheet workbook with a styled, frozen header row."""
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title[:31]
    if rows:
        headers = list(rows[0].keys())
        ws.append(headers)
        for row in rows:
            ws.append([row.get(h) for h in headers])

        ws.freeze_panes = "A2"
        ws.auto_filter.ref = ws.dimensions
        header_fill = PatternFill(fill_type="solid", fgColor="1F4E78")
        header_font = Font(color="FFFFFF", bold=True)
        for cell in ws[1]:
            cell.fill = header_fill
            cell.font = header_font
            cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        for col_cells in ws.columns:
            values = [str(cell.value) if cell.value is not None else "" for cell in col_cells]
            ws.column_dimensions[col_cells[0].column_letter].width = min(60, max(10, max(len(v) for v in values) + 2))

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def render(rows: list[dict[str, Any]], fmt: str, sheet_title: str = "Export") -> str | bytes:
    if fmt == "csv":
        return to_csv(rows)
    if fmt == "json":
        return to_json(rows)
    if fmt == "xlsx":
        return to_xlsx(rows, sheet_title)
    raise ValueError(f"Unsupported export format: {fmt!r}")
