from __future__ import annotations

import csv
import io
import json

import pytest
from openpyxl import load_workbook

from spacescope import export
from spacescope.scoring import CATEGORIES


@pytest.fixture()
def countries():
    return [
        {
            "id": 1, "name": "United States", "isoCode": "USA", "region": "North America",
            "spaceAgencyName": "NASA", "spaceAgencyFounded": 1958, "totalLaunches": 1800,
            "launchSuccessRate": 94.3, "humanSpaceflightCapable": True,
            "independentLaunchCapable": True, "reusableRocketCapable": True,
            "deepSpaceCapable": True, "overallCapabilityScore": 95,
        },
        {
            "id": 2, "name": "Neverland, The", "isoCode": "NVL", "region": None,
            "totalLaunches": None, "overallCapabilityScore": None,
        },
    ]


class TestRows:
    def test_country_rows(self, countries):
        rows = export.country_rows(countries)
        assert rows[0]["SuccessRate"] == "94.3%"
        assert rows[0]["HumanSpaceflight"] == "Yes"
        assert rows[0]["OverallScore"] == "95.0"
        assert rows[1]["Region"] == ""
        assert rows[1]["TotalLaunches"] == 0
        assert rows[1]["OverallScore"] == ""
        assert rows[1]["DeepSpace"] == "No"

    def test_vehicle_rows(self):
        rows = export.vehicle_rows([{"name": "Falcon 9", "payloadToLeoKg": 22800, "reusable": True}])
        assert rows[0]["PayloadToLEO_kg"] == 22800
        assert rows[0]["PayloadToGTO_kg"] == ""
        assert rows[0]["Reusable"] == "Yes"

    def test_engine_rows(self):
        rows = export.engine_rows([{"name": "Raptor", "origin": "USA", "thrustKn": 2256}])
        assert rows[0]["Country"] == "USA"
        assert rows[0]["ThrustKN"] == 2256

    def test_comparison_rows(self, countries):
        rows = export.comparison_rows(countries)
        assert len(rows) == len(CATEGORIES) + 1
        assert rows[0] == {"Category": "Launch Capability", "United States": 100.0, "Neverland, The": 0.0}
        assert rows[-1] == {"Category": "Overall Score", "United States": "95.0", "Neverland, The": "N/A"}

    def test_non_numeric_values_do_not_raise(self):
        record = {"name": "Loose", "launchSuccessRate": "n/a", "overallCapabilityScore": "n/a"}
        row = export.country_rows([record])[0]
        assert row["SuccessRate"] == ""
        assert row["OverallScore"] == "0.0"
        assert export.vehicle_rows([{"name": "V", "successRate": "unknown"}])[0]["SuccessRate"] == ""
        assert export.comparison_rows([record])[-1] == {"Category": "Overall Score", "Loose": "0.0"}

    def test_comparison_rows_keep_same_named_countries_apart(self):
        rows = export.comparison_rows([
            {"id": 1, "name": "Congo", "isoCode": "COD", "overallCapabilityScore": 10},
            {"id": 2, "name": "Congo", "isoCode": "COG", "overallCapabilityScore": 5},
        ])
        assert rows[-1] == {"Category": "Overall Score", "Congo (COD)": "10.0", "Congo (COG)": "5.0"}


class TestSerializers:
    def test_csv_quotes_special_characters(self):
        rows = [{"Name": 'Say "hi", ok', "Notes": "line1\nline2"}]
        out = export.to_csv(rows)
        assert out.startswith("Name,Notes\n")
        parsed = list(csv.DictReader(io.StringIO(out)))
        assert parsed == [{"Name": 'Say "hi", ok', "Notes": "line1\nline2"}]

    def test_csv_empty(self):
        assert export.to_csv([]) == ""

    def test_json(self, countries):
        rows = export.country_rows(countries)
        assert json.loads(export.to_json(rows)) == rows

    def test_xlsx(self, countries):
        data = export.to_xlsx(export.country_rows(countries), sheet_title="Countries")
        wb = load_workbook(io.BytesIO(data))
        ws = wb.active
        assert ws.title == "Countries"
        assert ws["A1"].value == "Name"
        assert ws["A1"].font.bold
        assert ws["A2"].value == "United States"
        assert ws.freeze_panes == "A2"
        assert ws.max_row == 3

    def test_render_dispatch(self):
        assert export.render([{"a": 1}], "csv") == "a\n1\n"
        assert isinstance(export.render([{"a": 1}], "xlsx"), bytes)
        with pytest.raises(ValueError):
            export.render([], "pdf")
