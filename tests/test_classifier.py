"""Tests for keyword-based department routing."""

from __future__ import annotations

import pytest

from sudarshan.models.enums import Department
from sudarshan.services.classifier import classify_department


class TestKeywordRouting:
    @pytest.mark.parametrize(
        ("complaint_type", "description", "expected"),
        [
            ("Power Cut", "No electricity since morning", Department.POWER),
            ("Garbage", "Garbage not collected for a week", Department.MUNICIPAL),
            ("Stray Animals", "Pack of stray dogs near the park", Department.MUNICIPAL),
            ("Pothole", "Large pothole near the metro station", Department.ROADS),
            ("Water", "Pipeline leak flooding the lane", Department.WATER),
            ("Street Light", "The street light outside my house is not working", Department.STREET_LIGHTING),
            ("Noise", "Loud music every night", Department.GENERAL),
        ],
    )
    def test_routes_by_keyword(self, complaint_type, description, expected) -> None:
        assert classify_department(complaint_type, "", description) == expected

    def test_matching_is_case_insensitive(self) -> None:
        assert classify_department("POTHOLE") == Department.ROADS
        assert classify_department("", "", "GARBAGE everywhere") == Department.MUNICIPAL

    def test_subject_is_considered(self) -> None:
        assert classify_department("General Grievance", "Overflowing garbage bins", "") == Department.MUNICIPAL


class TestPriority:
    def test_power_beats_roads(self) -> None:
        """A complaint mentioning both a pothole and a live wire goes to power."""
        result = classify_department("Pothole", "", "A live wire is hanging over the pothole")
        assert result == Department.POWER

    def test_municipal_beats_water(self) -> None:
        result = classify_department("Drain", "", "Sewage water overflowing")
        assert result == Department.MUNICIPAL

    def test_power_supply_does_not_fall_to_water(self) -> None:
        assert classify_department("", "", "No power supply in block C") == Department.POWER


class TestTotality:
    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_empty_input_is_general(self, value) -> None:
        assert classify_department(value, value, value) == Department.GENERAL

    def test_result_is_deterministic(self) -> None:
        args = ("Water", "Tanker did not arrive", "Please send a tanker")
        assert {classify_department(*args) for _ in range(5)} == {Department.WATER}
