"""Unit tests for the same-game parlay builder.

Test Strategy:
1. Test safe-leg selection (floor, families, outcome codes)
2. Test pairwise compatibility rules
3. Test combined probability, fair odds and confidence tiers
4. Test deduplication and ranking
5. Test markets derived from a probability table
"""
from datetime import datetime
from types import SimpleNamespace

import pytest

from app.services.betting import MatchMarkets, SameGameParlayBuilder, generate_candidates, markets_from_table
from app.services.betting.parlay_builder import ParlayLeg, line_key
from app.services.markets import compute_markets


def match(markets, match_id="m-1") -> MatchMarkets:
    return MatchMarkets(match_id=match_id, markets=markets, home_team="Liverpool", away_team="Chelsea")


def outcomes(candidate):
    return {leg.outcome for leg in candidate.legs}


class TestLegs:

    def test_line_key(self):
        assert line_key(2.5) == "2_5"
        assert line_key(0.5) == "0_5"

    def test_only_safe_legs(self):
        builder = SameGameParlayBuilder()
        legs = builder.build_legs(match({
            "btts": {"yes": 0.60, "no": 0.40},
            "totals": {"2_5": {"over": 0.54, "under": 0.46}},
            "dnb": {"home": 0.55, "away": 0.45},
        }))

        assert {leg.outcome for leg in legs} == {"BTTS_YES", "DNB_H"}

    def test_outcome_codes_and_descriptions(self):
        builder = SameGameParlayBuilder()
        legs = builder.build_legs(match({
            "double_chance": {"1X": 0.80, "X2": 0.40, "12": 0.70},
            "team_totals": {"home": {"0_5": {"over": 0.85, "under": 0.15}}},
            "clean_sheet": {"home": 0.2, "away": 0.6},
            "win_to_nil": {"home": 0.57, "away": 0.05},
            "odd_even_total": {"odd": 0.45, "even": 0.55},
        }))

        by_outcome = {leg.outcome: leg for leg in legs}
        assert set(by_outcome) == {"DC_1X", "DC_12", "TT_H_OVER_0_5", "CS_A", "WTN_H", "EVEN"}
        assert by_outcome["DC_1X"].description == "Liverpool or Draw"
        assert by_outcome["TT_H_OVER_0_5"].side == "HOME_OVER"
        assert by_outcome["CS_A"].market == "CLEAN_SHEET"

    def test_malformed_blocks_are_ignored(self):
        builder = SameGameParlayBuilder()
        legs = builder.build_legs(match({
            "btts": "yes",
            "totals": {"2_5": {"over": "0.7", "under": None}},
            "team_totals": ["home"],
        }))

        assert [leg.outcome for leg in legs] == ["OVER_2_5"]


class TestCompatibility:

    def leg(self, market, side, outcome, p=0.7):
        return ParlayLeg(market, side, outcome, p, outcome)

    def test_same_family_same_side_is_compatible(self):
        legs = [self.leg("TOTALS", "OVER", "OVER_1_5"), self.leg("TOTALS", "OVER", "OVER_2_5")]

        assert SameGameParlayBuilder.compatible(legs) is True

    def test_same_family_opposite_sides_conflict(self):
        legs = [self.leg("TOTALS", "OVER", "OVER_2_5"), self.leg("TOTALS", "UNDER", "UNDER_3_5")]

        assert SameGameParlayBuilder.compatible(legs) is False

    def test_repeated_outcome_conflicts(self):
        leg = self.leg("BTTS", "YES", "BTTS_YES")

        assert SameGameParlayBuilder.compatible([leg, leg]) is False

    def test_any_conflicting_pair_rejects_triple(self):
        legs = [
            self.leg("DNB", "HOME", "DNB_H"),
            self.leg("BTTS", "YES", "BTTS_YES"),
            self.leg("BTTS", "NO", "BTTS_NO"),
        ]

        assert SameGameParlayBuilder.compatible(legs) is False


class TestCandidates:

    def test_two_safe_legs_make_one_high_confidence_parlay(self):
        """BTTS_YES (0.60) + OVER_2_5 (0.65): 0.39 combined, fair odds ~2.56."""
        candidates = generate_candidates([match({
            "btts": {"yes": 0.60, "no": 0.40},
            "totals": {"2_5": {"over": 0.65, "under": 0.35}},
        })])

        assert len(candidates) == 1
        parlay = candidates[0]
        assert outcomes(parlay) == {"BTTS_YES", "OVER_2_5"}
        assert parlay.combined_prob == pytest.approx(0.39)
        assert parlay.fair_odds == pytest.approx(2.564, abs=1e-3)
        assert parlay.confidence == "high"

    def test_single_safe_leg_makes_nothing(self):
        assert generate_candidates([match({"btts": {"yes": 0.60, "no": 0.40}})]) == []

    def test_conflicting_legs_never_pair(self):
        candidates = generate_candidates([match({
            "totals": {
                "1_5": {"over": 0.80, "under": 0.20},
                "3_5": {"over": 0.30, "under": 0.70},
            },
        })])

        assert candidates == []

    def test_three_leg_parlays_cap_at_medium(self):
        candidates = generate_candidates([match({
            "dnb": {"home": 0.90, "away": 0.10},
            "double_chance": {"1X": 0.85, "X2": 0.30, "12": 0.40},
            "totals": {"0_5": {"over": 0.80, "under": 0.20}},
        })])

        triples = [c for c in candidates if len(c.legs) == 3]
        pairs = [c for c in candidates if len(c.legs) == 2]
        assert len(triples) == 1
        assert triples[0].combined_prob == pytest.approx(0.612)
        assert triples[0].confidence == "medium"
        assert len(pairs) == 3
        assert all(c.confidence == "high" for c in pairs)

    @pytest.mark.parametrize("combined,legs,expected", [
        (0.30, 2, "high"),
        (0.29, 2, "medium"),
        (0.20, 2, "medium"),
        (0.19, 2, "low"),
        (0.50, 3, "medium"),
        (0.10, 3, "low"),
    ])
    def test_confidence_tiers(self, combined, legs, expected):
        assert SameGameParlayBuilder().confidence_tier(combined, legs) == expected

    def test_triples_draw_from_top_ten_legs(self):
        markets = {
            "totals": {
                "0_5": {"over": 0.99, "under": 0.01},
                "1_5": {"over": 0.95, "under": 0.05},
                "2_5": {"over": 0.90, "under": 0.10},
                "3_5": {"over": 0.85, "under": 0.15},
                "4_5": {"over": 0.80, "under": 0.20},
            },
            "team_totals": {
                "home": {
                    "0_5": {"over": 0.75, "under": 0.25},
                    "1_5": {"over": 0.70, "under": 0.30},
                    "2_5": {"over": 0.65, "under": 0.35},
                },
                "away": {
                    "0_5": {"over": 0.40, "under": 0.60},
                    "1_5": {"over": 0.42, "under": 0.58},
                    "2_5": {"over": 0.44, "under": 0.56},
                },
            },
        }
        candidates = SameGameParlayBuilder().build_for_match(match(markets))

        weakest = "TT_A_UNDER_2_5"
        assert any(weakest in outcomes(c) for c in candidates if len(c.legs) == 2)
        assert not any(weakest in outcomes(c) for c in candidates if len(c.legs) == 3)

    def test_sorted_by_combined_probability(self):
        candidates = generate_candidates([
            match({"btts": {"yes": 0.60, "no": 0.40}, "totals": {"2_5": {"over": 0.65, "under": 0.35}}}, "a"),
            match({"dnb": {"home": 0.90, "away": 0.10}, "totals": {"0_5": {"over": 0.95, "under": 0.05}}}, "b"),
        ])

        probs = [c.combined_prob for c in candidates]
        assert probs == sorted(probs, reverse=True)
        assert candidates[0].match_id == "b"

    def test_duplicate_matches_are_deduplicated(self):
        markets = {"btts": {"yes": 0.60, "no": 0.40}, "totals": {"2_5": {"over": 0.65, "under": 0.35}}}

        candidates = generate_candidates([match(markets), match(markets)])

        assert len(candidates) == 1

    def test_min_leg_probability_is_configurable(self):
        markets = {"btts": {"yes": 0.60, "no": 0.40}, "totals": {"2_5": {"over": 0.65, "under": 0.35}}}

        assert generate_candidates([match(markets)], min_leg_probability=0.62) == []

    def test_to_dict(self):
        kickoff = datetime(2026, 3, 14, 20, 0)
        candidate = generate_candidates([MatchMarkets(
            match_id="m-1",
            markets={"btts": {"yes": 0.60, "no": 0.40}, "totals": {"2_5": {"over": 0.65, "under": 0.35}}},
            home_team="Liverpool",
            away_team="Chelsea",
            league="Premier League",
            kickoff_date=kickoff,
        )])[0]

        data = candidate.to_dict()

        assert data["matchId"] == "m-1"
        assert data["kickoffDate"] == "2026-03-14T20:00:00"
        assert data["confidence"] == "high"
        assert len(data["legs"]) == 2


class TestMatchMarkets:

    def test_from_record(self):
        record = SimpleNamespace(
            match_id="m-1",
            additional_markets={"btts": {"yes": 0.6, "no": 0.4}},
            home_team="Liverpool",
            away_team="Chelsea",
            league="Premier League",
            kickoff_date=None,
        )

        result = MatchMarkets.from_record(record)

        assert result.match_id == "m-1"
        assert result.markets["btts"]["yes"] == 0.6

    @pytest.mark.parametrize("block", [None, {}, "n/a"])
    def test_from_record_without_markets(self, block):
        record = SimpleNamespace(match_id="m-1", additional_markets=block)

        assert MatchMarkets.from_record(record) is None


class TestMarketsFromTable:

    def test_block_shape(self):
        table = compute_markets({"home": 1.80, "draw": 3.40, "away": 4.50}, {"home": 0, "away": 0}, 0)

        markets = markets_from_table(table)

        assert markets["dnb"]["home"] + markets["dnb"]["away"] == pytest.approx(1.0)
        assert markets["double_chance"]["1X"] == pytest.approx(table.home + table.draw)
        assert markets["odd_even_total"]["odd"] + markets["odd_even_total"]["even"] == pytest.approx(1.0)
        assert markets["totals"]["2_5"]["over"] == table.totals[2.5].over
        assert set(markets["team_totals"]["home"]) == {"0_5", "1_5", "2_5"}

    def test_clean_sheet_lost_once_opponent_scores(self):
        table = compute_markets({"home": 1.80, "draw": 3.40, "away": 4.50}, {"home": 0, "away": 1}, 30)

        markets = markets_from_table(table)

        assert markets["clean_sheet"]["home"] == 0.0
        assert markets["win_to_nil"]["home"] == 0.0

    def test_derived_markets_feed_the_builder(self):
        table = compute_markets({"home": 1.80, "draw": 3.40, "away": 4.50}, {"home": 0, "away": 0}, 0)

        candidates = generate_candidates([match(markets_from_table(table))])

        assert candidates
        for candidate in candidates:
            assert all(leg.probability >= 0.55 for leg in candidate.legs)
