"""
Tests for CSV report rendering.
"""

import csv
import io
from datetime import datetime

import pytest

from models import Operative, OperativeConclusion, OperativeCorporation, OperativeUnit
from utils.report_export import (
    AUDIT_COLUMNS,
    COMPLETE_COLUMNS,
    ExportError,
    build_operatives_csv,
    corporations_detail,
    export_filename,
    resolve_columns,
    units_detail,
)
from utils.text import strip_accents


def make_operative(op_id="OP24050101", **overrides):
    fields = {
        "id": op_id,
        "operative_type": "OPERATIVO CARRUSEL",
        "started_at": datetime(2024, 5, 1, 10, 30),
        "status": "ACTIVE",
        "region": "REGION 1",
        "quadrant": "1",
        "shift": "FIRST",
        "latitude": 19.3167,
        "longitude": -98.8833,
        "colony": "CENTRO",
        "street": "AV. JUAREZ",
        "created_by": "user-1",
    }
    fields.update(overrides)
    operative = Operative(**fields)
    operative.units = [
        OperativeUnit(unit_number="P-101", in_charge="JUAN PEREZ", rank="POLICIA PRIMERO", personnel_count=2),
        OperativeUnit(unit_number="P-102", in_charge="ANA DIAZ", rank="POLICIA", personnel_count=3),
    ]
    operative.corporations = [
        OperativeCorporation(name="GUARDIA NACIONAL", unit_number="GN-7", in_charge=None, unit_count=1, personnel_count=4)
    ]
    return operative


def conclude(operative, **overrides):
    fields = {
        "location": "AV. JUAREZ, CENTRO",
        "colonies_covered": ["CENTRO", "SAN JUAN"],
        "public_transport_checked": 4,
        "private_vehicles_checked": 10,
        "motorcycles_checked": 3,
        "people_checked": 25,
        "result": "DETAINED_TO_CIVIC_JUDGE",
        "detainees_count": 2,
        "detention_reason": "ALTERAR EL ORDEN PUBLICO",
        "concluded_at": datetime(2024, 5, 1, 14, 5),
    }
    fields.update(overrides)
    operative.status = "CONCLUDED"
    operative.conclusion = OperativeConclusion(**fields)
    return operative


def parse(text):
    assert text.startswith("\ufeff")
    return list(csv.reader(io.StringIO(text[1:])))


def source_fields(operative):
    """Scalar columns of the complete export read straight from the model."""
    conclusion = operative.conclusion
    meeting = conclusion if conclusion is not None and conclusion.representative_name else None
    return {
        "ID": operative.id,
        "TYPE": operative.operative_type,
        "MEETING_TOPIC": operative.meeting_topic or "N/A",
        "STATUS": operative.status,
        "DATE": operative.started_at.strftime("%Y-%m-%d"),
        "START": operative.started_at.strftime("%H:%M"),
        "CLOSE": conclusion.concluded_at.strftime("%H:%M") if conclusion else "--",
        "REGION": operative.region,
        "QUADRANT": operative.quadrant,
        "COLONY": operative.colony,
        "STREET": operative.street,
        "COORDINATES": f"{operative.latitude},{operative.longitude}",
        "RESULT": conclusion.result if conclusion else "N/A",
        "DETAINEES": (conclusion.detainees_count or 0) if conclusion else 0,
        "REASON_OR_CRIME": (conclusion.detention_reason or conclusion.crime_type or "--") if conclusion else "--",
        "COLONIES_COVERED": "; ".join(conclusion.colonies_covered) if conclusion else operative.colony,
        "PUBLIC_TRANSPORT": conclusion.public_transport_checked if conclusion else 0,
        "PRIVATE_VEHICLES": conclusion.private_vehicles_checked if conclusion else 0,
        "MOTORCYCLES": conclusion.motorcycles_checked if conclusion else 0,
        "PEOPLE": conclusion.people_checked if conclusion else 0,
        "NEIGHBORHOOD_REPRESENTATIVE": meeting.representative_name if meeting else "--",
        "NEIGHBORHOOD_PHONE": meeting.representative_phone if meeting else "--",
        "NEIGHBORHOOD_PARTICIPANTS": meeting.participant_count if meeting else 0,
        "NEIGHBORHOOD_PETITIONS": meeting.petitions if meeting else "--",
    }


class TestLayout:
    """Headers, quoting and line endings."""

    def test_complete_headers(self):
        rows = parse(build_operatives_csv([], COMPLETE_COLUMNS))

        assert len(rows) == 1
        assert len(rows[0]) == 26
        assert rows[0][0] == "ID"
        assert rows[0][-1] == "EXTERNAL_SUPPORT_DETAIL"

    def test_audit_headers(self):
        rows = parse(build_operatives_csv([], AUDIT_COLUMNS))

        assert len(rows[0]) == 21
        assert rows[0][2] == "DETAILED_STATUS"

    def test_every_field_is_quoted_without_carriage_returns(self):
        text = build_operatives_csv([make_operative()])

        assert "\r\n" not in text
        assert not text.endswith("\n")
        header = text[1:].split("\n")[0]
        assert header.startswith('"ID","TYPE"')

    def test_parse_back_recovers_ids(self):
        operatives = [make_operative("OP24050101"), conclude(make_operative("OP24050102"))]

        rows = parse(build_operatives_csv(operatives))

        assert [row[0] for row in rows[1:]] == ["OP24050101", "OP24050102"]
        assert all(len(row) == 26 for row in rows)

    def test_round_trip_matches_source(self):
        active = make_operative("OP24050101", colony="JARDÍN", street="Calle Niño Héroe")
        meeting = conclude(
            make_operative(
                "OP24050102",
                operative_type="REUNIÓN VECINAL",
                meeting_topic="ALUMBRADO PÚBLICO",
                started_at=datetime(2024, 5, 1, 18, 45),
            ),
            colonies_covered=["JARDÍN", "SAN JUAN"],
            result="DETERRENCE",
            detainees_count=None,
            detention_reason=None,
            representative_name="Rosa Martínez",
            representative_phone="5587654321",
            participant_count=18,
            petitions="Más alumbrado\nPatrullaje nocturno",
            concluded_at=datetime(2024, 5, 1, 20, 10),
        )
        text = build_operatives_csv([active, meeting])

        assert text.startswith("\ufeff")
        rows = list(csv.DictReader(io.StringIO(text[1:])))

        assert len(rows) == 2
        for operative, row in zip([active, meeting], rows):
            expected = source_fields(operative)
            assert set(row) - set(expected) == {"UNITS_DETAIL", "EXTERNAL_SUPPORT_DETAIL"}
            for header, value in expected.items():
                assert row[header] == strip_accents(str(value)).strip(), header
        assert rows[0]["STREET"] == "Calle Nino Heroe"
        assert rows[1]["NEIGHBORHOOD_REPRESENTATIVE"] == "Rosa Martinez"
        assert rows[1]["NEIGHBORHOOD_PETITIONS"] == "Mas alumbrado\nPatrullaje nocturno"


class TestCompleteRows:
    def _row(self, operative, columns=COMPLETE_COLUMNS):
        rows = parse(build_operatives_csv([operative], columns))
        return dict(zip(rows[0], rows[1]))

    def test_active_operative_placeholders(self):
        row = self._row(make_operative())

        assert row["MEETING_TOPIC"] == "N/A"
        assert row["CLOSE"] == "--"
        assert row["RESULT"] == "N/A"
        assert row["DETAINEES"] == "0"
        assert row["REASON_OR_CRIME"] == "--"
        assert row["COLONIES_COVERED"] == "CENTRO"
        assert row["NEIGHBORHOOD_REPRESENTATIVE"] == "--"
        assert row["NEIGHBORHOOD_PARTICIPANTS"] == "0"
        assert row["COORDINATES"] == "19.3167,-98.8833"

    def test_concluded_operative(self):
        row = self._row(conclude(make_operative()))

        assert row["CLOSE"] == "14:05"
        assert row["RESULT"] == "DETAINED_TO_CIVIC_JUDGE"
        assert row["DETAINEES"] == "2"
        assert row["REASON_OR_CRIME"] == "ALTERAR EL ORDEN PUBLICO"
        assert row["COLONIES_COVERED"] == "CENTRO; SAN JUAN"
        assert row["PEOPLE"] == "25"

    def test_missing_coordinates(self):
        row = self._row(make_operative(latitude=None))

        assert row["COORDINATES"] == "N/A"

    def test_accents_are_stripped(self):
        row = self._row(make_operative(colony="JARDÍN", street="Calle Niño Héroe"))

        assert row["COLONY"] == "JARDIN"
        assert row["STREET"] == "Calle Nino Heroe"

    def test_embedded_quotes_are_doubled(self):
        text = build_operatives_csv([make_operative(street='CALLE "LA PAZ"')])

        assert '"CALLE ""LA PAZ"""' in text
        assert parse(text)[1][10] == 'CALLE "LA PAZ"'

    def test_meeting_details(self):
        operative = conclude(
            make_operative(operative_type="REUNION VECINAL", meeting_topic="ALUMBRADO PUBLICO"),
            result="DETERRENCE",
            detainees_count=None,
            detention_reason=None,
            representative_name="ROSA MARTINEZ",
            representative_phone="5587654321",
            participant_count=18,
            petitions="MAS ALUMBRADO\nPATRULLAJE",
        )

        row = self._row(operative)

        assert row["MEETING_TOPIC"] == "ALUMBRADO PUBLICO"
        assert row["NEIGHBORHOOD_REPRESENTATIVE"] == "ROSA MARTINEZ"
        assert row["NEIGHBORHOOD_PARTICIPANTS"] == "18"
        assert row["NEIGHBORHOOD_PETITIONS"] == "MAS ALUMBRADO\nPATRULLAJE"
        assert row["DETAINEES"] == "0"


class TestAuditRows:
    def _row(self, operative):
        rows = parse(build_operatives_csv([operative], AUDIT_COLUMNS))
        return dict(zip(rows[0], rows[1]))

    def test_active_operative(self):
        row = self._row(make_operative())

        assert row["DETAILED_STATUS"] == "IN PROGRESS"
        assert row["DATE"] == "01/05/2024"
        assert row["CLOSE_TIME"] == "--:--"
        assert row["COORDINATES"] == "19.316700, -98.883300"
        assert row["REPRESENTATIVE"] == ""

    def test_petitions_are_flattened(self):
        operative = conclude(
            make_operative(),
            result="DETERRENCE",
            representative_name="ROSA",
            representative_phone="5587654321",
            participant_count=3,
            petitions="UNO\nDOS",
        )

        row = self._row(operative)

        assert row["NEIGHBORHOOD_PETITIONS"] == "UNO DOS"
        assert row["PARTICIPANTS"] == "3"
        assert row["CLOSE_TIME"] == "14:05"


class TestDetailColumns:
    def test_units_detail(self):
        detail = units_detail(make_operative())

        assert detail == (
            "[UNIT: P-101 - IN CHARGE: JUAN PEREZ (POLICIA PRIMERO) - PERSONNEL: 2]"
            " | [UNIT: P-102 - IN CHARGE: ANA DIAZ (POLICIA) - PERSONNEL: 3]"
        )

    def test_corporations_detail_uses_placeholder(self):
        detail = corporations_detail(make_operative())

        assert detail == "[CORP: GUARDIA NACIONAL - UNIT: GN-7 - IN CHARGE: N/A - UNITS: 1 - PERSONNEL: 4]"

    def test_no_corporations_gives_empty_cell(self):
        operative = make_operative()
        operative.corporations = []

        assert corporations_detail(operative) == ""


class TestColumnSelection:
    def test_default_is_full_set(self):
        assert resolve_columns("complete") == COMPLETE_COLUMNS
        assert resolve_columns("AUDIT") == AUDIT_COLUMNS

    def test_subset_keeps_requested_order(self):
        columns = resolve_columns("complete", ["region", "id"])

        assert [column.header for column in columns] == ["REGION", "ID"]

    def test_unknown_column_or_flavor(self):
        with pytest.raises(ExportError):
            resolve_columns("complete", ["DETAILED_STATUS"])
        with pytest.raises(ExportError):
            resolve_columns("summary")
        with pytest.raises(ExportError):
            resolve_columns("audit", [" ", ""])

    def test_filename(self):
        assert export_filename("audit", "2024-05-01", "2024-05-03") == "OPERATIVES_AUDIT_2024-05-01_TO_2024-05-03.csv"
