"""Tests for the heuristic recommendation oracle and the fixture catalog."""

from datetime import date

import pytest

from backend.itinerary.adapters.catalog import FixtureCatalog
from backend.itinerary.adapters.oracle import HeuristicOracle
from backend.itinerary.models.common import DayTransportMode
from tests.itinerary_test_helpers import SAMPLE_DESTINATIONS, destination


@pytest.fixture
def pool():
    return [destination(d["id"], **d) for d in SAMPLE_DESTINATIONS]


class TestHeuristicOracle:
    def test_ranks_by_rating_and_interest(self, pool):
        recs = HeuristicOracle().recommend("user_123", pool, 10, ["nature", "museum"])

        assert [r.id for r in recs] == ["museum_angkut", "coban_rondo", "jatim_park_2"]
        assert recs[0].score == pytest.approx(0.776)

    def test_limit_is_respected(self, pool):
        assert len(HeuristicOracle().recommend("user_123", pool, 2)) == 2
        assert HeuristicOracle().recommend("user_123", pool, 0) == []

    def test_deterministic(self, pool):
        oracle = HeuristicOracle()

        first = oracle.recommend("user_123", pool, 10, ["nature"])
        second = oracle.recommend("user_123", list(reversed(pool)), 10, ["nature"])

        assert first == second

    def test_ties_break_on_id(self):
        items = [destination("b"), destination("a")]

        recs = HeuristicOracle().recommend("user_123", items, 10)

        assert [r.id for r in recs] == ["a", "b"]

    def test_scores_stay_in_range(self, pool):
        for rec in HeuristicOracle().recommend("user_123", pool, 10, ["family", "zoo"]):
            assert 0 <= rec.score <= 1
            assert 0 <= rec.confidence <= 0.95
            assert rec.predicted_rating <= 5


class TestFixtureCatalog:
    def test_destinations_by_city_case_insensitive(self):
        ids = [d.id for d in FixtureCatalog().destinations("  malang ")]

        assert ids == ["jodipan", "alun_alun_malang"]

    def test_unknown_city_is_empty(self):
        assert FixtureCatalog().destinations("Atlantis") == []

    def test_all_destinations_dedupes_in_city_order(self):
        catalog = FixtureCatalog()

        ids = [d.id for d in catalog.all_destinations(["Batu", "Malang", "batu"])]

        assert ids == ["museum_angkut", "jatim_park_2", "coban_rondo", "jodipan", "alun_alun_malang"]

    def test_custom_records(self):
        catalog = FixtureCatalog(SAMPLE_DESTINATIONS[:1])

        assert [d.id for d in catalog.destinations("Batu")] == ["museum_angkut"]

    @pytest.mark.parametrize(
        "origin,dest,mode",
        [
            ("jodipan", "alun_alun_malang", DayTransportMode.walking),
            ("jodipan", "museum_angkut", DayTransportMode.public),
            ("monas", "museum_angkut", DayTransportMode.taxi),
        ],
    )
    def test_route_quote_modes(self, origin, dest, mode):
        quote = FixtureCatalog().route_quote(origin, dest, date(2026, 7, 10))

        assert quote.mode is mode
        assert quote.price >= 0

    def test_route_quote_is_idempotent(self):
        catalog = FixtureCatalog()
        day = date(2026, 7, 10)

        assert catalog.route_quote("monas", "kota_tua", day) == catalog.route_quote(
            "monas", "kota_tua", day
        )

    def test_unknown_route_endpoint(self):
        with pytest.raises(KeyError):
            FixtureCatalog().route_quote("jodipan", "nowhere", date(2026, 7, 10))
