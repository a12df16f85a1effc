"""
Tests for operative registration, conclusion and deletion.
"""

from datetime import datetime

import pytest

from extensions import db
from models import DailySequence, Operative, User
from utils.operative_workflow import (
    OperativeNotFound,
    OperativeValidationError,
    conclude_operative,
    create_operative,
    delete_operative,
    is_meeting_type,
    next_operative_id,
)

MAY_FIRST = datetime(2024, 5, 1, 10, 30)


@pytest.fixture
def admin(ctx, accounts):
    return db.session.get(User, accounts["admin"])


@pytest.fixture
def patrol(ctx, accounts):
    return db.session.get(User, accounts["patrol2"])


def _meeting_payload(operative_payload, **overrides):
    return operative_payload(type="REUNION VECINAL", meeting_topic="Seguridad vecinal", corporations=[], **overrides)


class TestOperativeIds:
    """Daily ids are OP + YYMMDD + sequence."""

    def test_same_day_ids_increase(self, admin, operative_payload):
        first = create_operative(operative_payload(), admin, now=MAY_FIRST)
        second = create_operative(operative_payload(), admin, now=MAY_FIRST.replace(hour=23))

        assert first.id == "OP24050101"
        assert second.id == "OP24050102"

    def test_sequence_restarts_each_day(self, admin, operative_payload):
        create_operative(operative_payload(), admin, now=MAY_FIRST)
        next_day = create_operative(operative_payload(), admin, now=datetime(2024, 5, 2, 8, 0))

        assert next_day.id == "OP24050201"

    def test_counter_is_seeded_from_existing_ids(self, ctx):
        for suffix in ("01", "02"):
            db.session.add(
                Operative(
                    id=f"OP240501{suffix}",
                    operative_type="OPERATIVO CARRUSEL",
                    started_at=MAY_FIRST,
                    region="REGION 1",
                    quadrant="1",
                    colony="CENTRO",
                    street="AV. JUAREZ",
                    created_by="legacy",
                )
            )
        db.session.commit()

        assert next_operative_id(MAY_FIRST) == "OP24050103"
        assert next_operative_id(MAY_FIRST) == "OP24050104"
        db.session.expire_all()
        assert db.session.get(DailySequence, "240501").last_value == 4


class TestCreateOperative:
    """Registration validation and normalization."""

    def test_created_record_is_active_and_normalized(self, admin, operative_payload):
        payload = operative_payload()
        payload["location"]["street"] = "Av. Juárez"
        payload["units"][0]["in_charge"] = "José Núñez"

        operative = create_operative(payload, admin, now=MAY_FIRST)

        assert operative.status == "ACTIVE"
        assert operative.conclusion is None
        assert operative.start_date == "2024-05-01"
        assert operative.start_time == "10:30"
        assert operative.street == "AV. JUAREZ"
        assert operative.units[0].in_charge == "JOSE NUNEZ"
        assert operative.units[0].phone == "5512345678"
        assert operative.units[0].unit_type == "PATRULLA"
        assert operative.corporations[0].name == "GUARDIA NACIONAL"
        assert operative.created_by == admin.id

    def test_registration_waits_for_the_caller_to_commit(self, admin, operative_payload):
        operative_id = create_operative(operative_payload(), admin, now=MAY_FIRST).id
        assert Operative.query.count() == 1

        db.session.rollback()

        assert Operative.query.count() == 0
        assert db.session.get(DailySequence, "240501") is None
        assert create_operative(operative_payload(), admin, now=MAY_FIRST).id == operative_id

    def test_unit_phone_keeps_ten_digits(self, admin, operative_payload):
        payload = operative_payload()
        payload["units"][0]["phone"] = "+52 (55) 1234-5678"

        operative = create_operative(payload, admin, now=MAY_FIRST)

        assert operative.units[0].phone == "5255123456"

    @pytest.mark.parametrize("field", ["colony", "street"])
    def test_location_fields_are_required(self, admin, operative_payload, field):
        payload = operative_payload()
        payload["location"][field] = "  "

        with pytest.raises(OperativeValidationError):
            create_operative(payload, admin, now=MAY_FIRST)
        assert Operative.query.count() == 0
        assert DailySequence.query.count() == 0

    def test_quadrant_is_required(self, admin, operative_payload):
        with pytest.raises(OperativeValidationError):
            create_operative(operative_payload(quadrant=""), admin, now=MAY_FIRST)

    def test_at_least_one_unit(self, admin, operative_payload):
        with pytest.raises(OperativeValidationError):
            create_operative(operative_payload(units=[]), admin, now=MAY_FIRST)

    def test_rank_must_be_in_catalog(self, admin, operative_payload):
        payload = operative_payload()
        payload["units"][0]["rank"] = "CORONEL"

        with pytest.raises(OperativeValidationError):
            create_operative(payload, admin, now=MAY_FIRST)

    def test_corporation_must_be_in_catalog(self, admin, operative_payload):
        payload = operative_payload()
        payload["corporations"][0]["name"] = "INTERPOL"

        with pytest.raises(OperativeValidationError):
            create_operative(payload, admin, now=MAY_FIRST)

    def test_negative_personnel_is_rejected(self, admin, operative_payload):
        payload = operative_payload()
        payload["units"][0]["personnel_count"] = -1

        with pytest.raises(OperativeValidationError):
            create_operative(payload, admin, now=MAY_FIRST)

    def test_unknown_type_is_rejected(self, admin, operative_payload):
        with pytest.raises(OperativeValidationError):
            create_operative(operative_payload(type="OPERATIVO FANTASMA"), admin, now=MAY_FIRST)

    def test_other_type_takes_free_text(self, admin, operative_payload):
        payload = operative_payload(type="OTRO OPERATIVO", custom_type="Operativo tianguis")

        operative = create_operative(payload, admin, now=MAY_FIRST)

        assert operative.operative_type == "OPERATIVO TIANGUIS"

    def test_meeting_requires_topic(self, admin, operative_payload):
        payload = operative_payload(type="REUNION VECINAL")

        with pytest.raises(OperativeValidationError):
            create_operative(payload, admin, now=MAY_FIRST)

    def test_meeting_topic_is_dropped_for_patrols(self, admin, operative_payload):
        operative = create_operative(operative_payload(meeting_topic="SEGURIDAD VECINAL"), admin, now=MAY_FIRST)

        assert operative.meeting_topic is None

    def test_invalid_shift_is_rejected(self, admin, operative_payload):
        with pytest.raises(OperativeValidationError):
            create_operative(operative_payload(shift="NIGHT"), admin, now=MAY_FIRST)

    def test_out_of_range_coordinates_are_rejected(self, admin, operative_payload):
        payload = operative_payload()
        payload["location"]["latitude"] = 123.0

        with pytest.raises(OperativeValidationError):
            create_operative(payload, admin, now=MAY_FIRST)

    def test_region_is_pinned_for_regional_users(self, patrol, operative_payload):
        operative = create_operative(operative_payload(region="REGION 1"), patrol, now=MAY_FIRST)

        assert operative.region == "REGION 2"

    def test_municipality_wide_user_chooses_region(self, accounts, ctx, operative_payload):
        chief = db.session.get(User, accounts["municipal"])

        operative = create_operative(operative_payload(region="Región 3"), chief, now=MAY_FIRST)

        assert operative.region == "REGION 3"


class TestConcludeOperative:
    """Conclusion payload rules for patrols and meetings."""

    def test_patrol_with_detainees_for_civic_judge(self, admin, operative_payload):
        operative = create_operative(operative_payload(), admin, now=MAY_FIRST)

        concluded = conclude_operative(
            operative.id,
            {
                "result": "DETAINED_TO_CIVIC_JUDGE",
                "detainees_count": 2,
                "reason": "Alterar el orden público",
                "public_transport_checked": 4,
                "private_vehicles_checked": 10,
                "motorcycles_checked": 3,
                "people_checked": 25,
            },
            admin,
            now=datetime(2024, 5, 1, 14, 5),
        )

        conclusion = concluded.conclusion
        assert concluded.status == "CONCLUDED"
        assert conclusion.detainees_count == 2
        assert conclusion.detention_reason == "ALTERAR EL ORDEN PUBLICO"
        assert conclusion.crime_type is None
        assert conclusion.colonies_covered == ["CENTRO"]
        assert conclusion.location == "AV. JUAREZ, HIDALGO, CENTRO"
        assert conclusion.people_checked == 25
        assert concluded.to_dict()["conclusion"]["reunion_details"] is None
        assert concluded.to_dict()["conclusion"]["concluded_at"] == "14:05"

    def test_prosecutor_result_records_crime_type(self, admin, operative_payload):
        operative = create_operative(operative_payload(), admin, now=MAY_FIRST)

        conclusion = conclude_operative(
            operative.id,
            {"result": "REFERRED_TO_PROSECUTOR", "detainees_count": 1, "reason": "NARCOMENUDEO"},
            admin,
        ).conclusion

        assert conclusion.crime_type == "NARCOMENUDEO"
        assert conclusion.detention_reason is None

    def test_other_reason_takes_free_text(self, admin, operative_payload):
        operative = create_operative(operative_payload(), admin, now=MAY_FIRST)

        conclusion = conclude_operative(
            operative.id,
            {"result": "REFERRED_TO_PROSECUTOR", "reason": "OTRO", "other_reason": "Daño en propiedad"},
            admin,
        ).conclusion

        assert conclusion.crime_type == "DANO EN PROPIEDAD"

    def test_deterrence_has_no_detainees(self, admin, operative_payload):
        operative = create_operative(operative_payload(), admin, now=MAY_FIRST)

        conclusion = conclude_operative(
            operative.id, {"result": "DETERRENCE", "detainees_count": 5, "reason": "LESIONES"}, admin
        ).conclusion

        assert conclusion.detainees_count is None
        assert conclusion.detention_reason is None
        assert conclusion.crime_type is None

    def test_covered_colonies_must_belong_to_region(self, admin, operative_payload):
        operative = create_operative(operative_payload(), admin, now=MAY_FIRST)

        with pytest.raises(OperativeValidationError):
            conclude_operative(operative.id, {"colonies_covered": ["CENTRO", "EL CARMEN"]}, admin)

        db.session.refresh(operative)
        assert operative.status == "ACTIVE"
        assert operative.conclusion is None

    def test_covered_colonies_are_normalized_and_deduplicated(self, admin, operative_payload):
        operative = create_operative(operative_payload(), admin, now=MAY_FIRST)

        conclusion = conclude_operative(
            operative.id, {"colonies_covered": ["San Juan", "SAN JUAN", "la magdalena"]}, admin
        ).conclusion

        assert conclusion.colonies_covered == ["SAN JUAN", "LA MAGDALENA"]

    def test_meeting_conclusion_zeroes_counters(self, admin, operative_payload):
        operative = create_operative(_meeting_payload(operative_payload), admin, now=MAY_FIRST)

        concluded = conclude_operative(
            operative.id,
            {
                "people_checked": 40,
                "result": "REFERRED_TO_PROSECUTOR",
                "reunion_details": {
                    "representative_name": "Rosa Martínez",
                    "phone": "55 8765 4321",
                    "participant_count": 18,
                    "petitions": "Más alumbrado\nPatrullaje nocturno",
                },
            },
            admin,
        )

        conclusion = concluded.conclusion
        assert conclusion.colonies_covered
        assert conclusion.result == "DETERRENCE"
        assert conclusion.detainees_count is None
        for field in ("public_transport_checked", "private_vehicles_checked", "motorcycles_checked", "people_checked"):
            assert getattr(conclusion, field) == 0
        details = concluded.to_dict()["conclusion"]["reunion_details"]
        assert details["representative_name"] == "ROSA MARTINEZ"
        assert details["phone"] == "5587654321"
        assert details["participant_count"] == 18

    @pytest.mark.parametrize(
        "missing",
        ["representative_name", "phone", "participant_count", "petitions"],
    )
    def test_meeting_details_are_required(self, admin, operative_payload, missing):
        operative = create_operative(_meeting_payload(operative_payload), admin, now=MAY_FIRST)
        details = {
            "representative_name": "Rosa",
            "phone": "5587654321",
            "participant_count": 5,
            "petitions": "Bacheo",
        }
        details[missing] = 0 if missing == "participant_count" else ""

        with pytest.raises(OperativeValidationError):
            conclude_operative(operative.id, {"reunion_details": details}, admin)

    def test_concluding_twice_is_rejected(self, admin, operative_payload):
        operative = create_operative(operative_payload(), admin, now=MAY_FIRST)
        conclude_operative(operative.id, {}, admin)

        with pytest.raises(OperativeValidationError):
            conclude_operative(operative.id, {}, admin)

    def test_unknown_result_is_rejected(self, admin, operative_payload):
        operative = create_operative(operative_payload(), admin, now=MAY_FIRST)

        with pytest.raises(OperativeValidationError):
            conclude_operative(operative.id, {"result": "ESCAPED"}, admin)

    def test_unknown_operative(self, admin):
        with pytest.raises(OperativeNotFound):
            conclude_operative("OP00000001", {}, admin)


class TestDeleteOperative:
    def test_admin_deletes_any_status(self, admin, operative_payload):
        operative = create_operative(operative_payload(), admin, now=MAY_FIRST)
        conclude_operative(operative.id, {}, admin)

        delete_operative(operative.id, admin)

        assert Operative.query.count() == 0

    def test_non_admin_cannot_delete(self, admin, patrol, operative_payload):
        operative = create_operative(operative_payload(), patrol, now=MAY_FIRST)

        with pytest.raises(OperativeValidationError):
            delete_operative(operative.id, patrol)
        assert db.session.get(Operative, operative.id) is not None

    def test_rolled_back_deletion_keeps_the_record(self, admin, operative_payload):
        operative_id = create_operative(operative_payload(), admin, now=MAY_FIRST).id
        db.session.commit()

        delete_operative(operative_id, admin)
        db.session.rollback()

        assert db.session.get(Operative, operative_id) is not None


def test_meeting_marker_matches_substring(ctx):
    assert is_meeting_type("Reunión vecinal extraordinaria")
    assert not is_meeting_type("OPERATIVO CARRUSEL")
