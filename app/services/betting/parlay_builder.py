"""
Same-game parlay builder.

Builds 2-leg and 3-leg parlays from the per-match market probabilities a
provider publishes (or that ``markets_from_table`` derives).

LEG RULES:
- Only "safe" legs: individual probability >= 0.55
- Families: DNB, totals (0.5-4.5), team totals (0.5-2.5 per side), BTTS,
  double chance, win-to-nil, clean sheet, odd/even

PARLAY RULES:
- Two legs of the same family must share a side (Over 1.5 + Over 2.5 is
  fine, Over 2.5 + Under 3.5 is not)
- No two legs with the same outcome code
- 3-leg parlays draw from the 10 most probable safe legs only
- Combined probability is the product of the legs (independence assumed);
  fair odds = 1 / combined probability
- Confidence: high >= 0.30, medium >= 0.20, else low; 3-leg parlays cap at medium
- Deduplicated by sorted outcome codes per match, then globally by
  (match id, outcomes); sorted by combined probability, highest first
"""
import math
from dataclasses import dataclass
from datetime import datetime
from itertools import combinations
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from app.core.logging import get_logger
from app.services.markets.derived_markets import MarketProbabilityTable, TEAM_TOTAL_LINES, TOTAL_LINES

logger = get_logger(__name__)


def line_key(line: float) -> str:
    """Provider key for a goal line: 2.5 -> '2_5'."""
    return f"{line:.1f}".replace(".", "_")


@dataclass(frozen=True)
class ParlayLeg:
    """One market outcome."""
    market: str
    side: str
    outcome: str
    probability: float
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "market": self.market,
            "side": self.side,
            "outcome": self.outcome,
            "probability": self.probability,
            "description": self.description,
        }


@dataclass(frozen=True)
class ParlayCandidate:
    """A same-game parlay. Computed on demand, never stored as truth."""
    match_id: str
    legs: Tuple[ParlayLeg, ...]
    combined_prob: float
    fair_odds: float
    confidence: str
    home_team: Optional[str] = None
    away_team: Optional[str] = None
    league: Optional[str] = None
    kickoff_date: Optional[datetime] = None

    @property
    def outcome_key(self) -> str:
        return "|".join(sorted(leg.outcome for leg in self.legs))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matchId": self.match_id,
            "homeTeam": self.home_team,
            "awayTeam": self.away_team,
            "league": self.league,
            "kickoffDate": self.kickoff_date.isoformat() if self.kickoff_date else None,
            "legs": [leg.to_dict() for leg in self.legs],
            "combinedProb": self.combined_prob,
            "fairOdds": self.fair_odds,
            "confidence": self.confidence,
        }


@dataclass
class MatchMarkets:
    """Market probabilities for one match, in the provider's block shape.

    Shape::

        {
            "dnb": {"home": p, "away": p},
            "totals": {"2_5": {"over": p, "under": p}, ...},
            "btts": {"yes": p, "no": p},
            "double_chance": {"1X": p, "X2": p, "12": p},
            "win_to_nil": {"home": p, "away": p},
            "clean_sheet": {"home": p, "away": p},
            "team_totals": {"home": {"1_5": {"over": p, "under": p}}, "away": {...}},
            "odd_even_total": {"odd": p, "even": p},
        }
    """
    match_id: str
    markets: Dict[str, Any]
    home_team: str = "Home"
    away_team: str = "Away"
    league: Optional[str] = None
    kickoff_date: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: Any) -> Optional["MatchMarkets"]:
        """Build from a stored MarketMatch; None if it carries no market block."""
        if not isinstance(record.additional_markets, Mapping) or not record.additional_markets:
            return None
        return cls(
            match_id=record.match_id,
            markets=dict(record.additional_markets),
            home_team=record.home_team,
            away_team=record.away_team,
            league=record.league,
            kickoff_date=record.kickoff_date,
        )


def markets_from_table(table: MarketProbabilityTable) -> Dict[str, Any]:
    """
    Convert a derived table into the provider block shape.

    Double chance, DNB, clean sheet and win-to-nil come from the normalised
    1-X-2 and the BTTS scoring marginals, under the same independence
    assumption. Odd/even uses the Poisson parity of the remaining goals.
    """
    p_home, p_draw, p_away = table.home, table.draw, table.away
    home_scores = table.btts.home_scores if table.btts else 0.5
    away_scores = table.btts.away_scores if table.btts else 0.5

    decisive = p_home + p_away
    remaining = max(0.0, table.total_expected_goals - table.current_goals)
    even_remaining = (1.0 + math.exp(-2.0 * remaining)) / 2.0
    even = even_remaining if table.current_goals % 2 == 0 else 1.0 - even_remaining

    # Clean sheet is only possible while the opponent has not scored
    home_clean = 0.0 if table.away_goals else 1.0 - away_scores
    away_clean = 0.0 if table.home_goals else 1.0 - home_scores

    return {
        "dnb": {"home": p_home / decisive, "away": p_away / decisive},
        "totals": {
            line_key(line): {"over": p.over, "under": p.under} for line, p in table.totals.items()
        },
        "btts": {"yes": table.btts.yes, "no": table.btts.no} if table.btts else {},
        "double_chance": {"1X": p_home + p_draw, "X2": p_draw + p_away, "12": p_home + p_away},
        "win_to_nil": {"home": p_home * home_clean, "away": p_away * away_clean},
        "clean_sheet": {"home": home_clean, "away": away_clean},
        "team_totals": {
            side: {line_key(line): {"over": p.over, "under": p.under} for line, p in lines.items()}
            for side, lines in table.team_totals.items()
        },
        "odd_even_total": {"odd": 1.0 - even, "even": even},
    }


def _prob(block: Any, key: str) -> Optional[float]:
    if not isinstance(block, Mapping):
        return None
    value = block.get(key)
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class SameGameParlayBuilder:
    """
    Enumerate same-game parlays from per-match market probabilities.
    """

    MIN_LEG_PROBABILITY = 0.55
    TRIPLE_POOL_SIZE = 10
    HIGH_CONFIDENCE = 0.30
    MEDIUM_CONFIDENCE = 0.20

    def __init__(self, min_leg_probability: float = MIN_LEG_PROBABILITY):
        self.min_leg_probability = min_leg_probability

    # ========================================================================
    # Legs
    # ========================================================================

    def build_legs(self, match: MatchMarkets) -> List[ParlayLeg]:
        """All outcomes of ``match`` clearing the safe-leg floor, in market order."""
        m = match.markets
        home, away = match.home_team, match.away_team
        legs: List[ParlayLeg] = []

        def add(market: str, side: str, outcome: str, probability: Optional[float], description: str):
            if probability is not None and probability >= self.min_leg_probability:
                legs.append(ParlayLeg(market, side, outcome, probability, description))

        dnb = m.get("dnb")
        add("DNB", "HOME", "DNB_H", _prob(dnb, "home"), f"{home} Draw No Bet")
        add("DNB", "AWAY", "DNB_A", _prob(dnb, "away"), f"{away} Draw No Bet")

        totals = m.get("totals") or {}
        for line in TOTAL_LINES:
            key = line_key(line)
            block = totals.get(key) if isinstance(totals, Mapping) else None
            add("TOTALS", "OVER", f"OVER_{key}", _prob(block, "over"), f"Over {line} Goals")
            add("TOTALS", "UNDER", f"UNDER_{key}", _prob(block, "under"), f"Under {line} Goals")

        btts = m.get("btts")
        add("BTTS", "YES", "BTTS_YES", _prob(btts, "yes"), "Both Teams To Score - Yes")
        add("BTTS", "NO", "BTTS_NO", _prob(btts, "no"), "Both Teams To Score - No")

        dc = m.get("double_chance")
        add("DOUBLE_CHANCE", "1X", "DC_1X", _prob(dc, "1X"), f"{home} or Draw")
        add("DOUBLE_CHANCE", "X2", "DC_X2", _prob(dc, "X2"), f"Draw or {away}")
        add("DOUBLE_CHANCE", "12", "DC_12", _prob(dc, "12"), f"{home} or {away}")

        wtn = m.get("win_to_nil")
        add("WIN_TO_NIL", "HOME", "WTN_H", _prob(wtn, "home"), f"{home} Win To Nil")
        add("WIN_TO_NIL", "AWAY", "WTN_A", _prob(wtn, "away"), f"{away} Win To Nil")

        cs = m.get("clean_sheet")
        add("CLEAN_SHEET", "HOME", "CS_H", _prob(cs, "home"), f"{home} Clean Sheet")
        add("CLEAN_SHEET", "AWAY", "CS_A", _prob(cs, "away"), f"{away} Clean Sheet")

        team_totals = m.get("team_totals") or {}
        for side, code, team in (("home", "H", home), ("away", "A", away)):
            lines = team_totals.get(side) if isinstance(team_totals, Mapping) else None
            if not isinstance(lines, Mapping):
                continue
            for line in TEAM_TOTAL_LINES:
                key = line_key(line)
                block = lines.get(key)
                add("TEAM_TOTALS", f"{side.upper()}_OVER", f"TT_{code}_OVER_{key}",
                    _prob(block, "over"), f"{team} Over {line} Goals")
                add("TEAM_TOTALS", f"{side.upper()}_UNDER", f"TT_{code}_UNDER_{key}",
                    _prob(block, "under"), f"{team} Under {line} Goals")

        odd_even = m.get("odd_even_total")
        add("ODD_EVEN", "ODD", "ODD", _prob(odd_even, "odd"), "Odd Total Goals")
        add("ODD_EVEN", "EVEN", "EVEN", _prob(odd_even, "even"), "Even Total Goals")

        return legs

    # ========================================================================
    # Combinations
    # ========================================================================

    @staticmethod
    def compatible(legs: Sequence[ParlayLeg]) -> bool:
        """True if no pair conflicts (same family, different side) or repeats an outcome."""
        for a, b in combinations(legs, 2):
            if a.market == b.market and a.side != b.side:
                return False
            if a.outcome == b.outcome:
                return False
        return True

    def confidence_tier(self, combined_prob: float, leg_count: int) -> str:
        if combined_prob >= self.HIGH_CONFIDENCE and leg_count < 3:
            return "high"
        if combined_prob >= self.MEDIUM_CONFIDENCE:
            return "medium"
        return "low"

    def _candidate(self, match: MatchMarkets, legs: Tuple[ParlayLeg, ...]) -> ParlayCandidate:
        combined = 1.0
        for leg in legs:
            combined *= leg.probability
        return ParlayCandidate(
            match_id=match.match_id,
            legs=legs,
            combined_prob=combined,
            fair_odds=1.0 / combined,
            confidence=self.confidence_tier(combined, len(legs)),
            home_team=match.home_team,
            away_team=match.away_team,
            league=match.league,
            kickoff_date=match.kickoff_date,
        )

    def build_for_match(self, match: MatchMarkets) -> List[ParlayCandidate]:
        """2-leg and 3-leg candidates for one match, deduplicated by outcome set."""
        safe_legs = self.build_legs(match)
        if len(safe_legs) < 2:
            return []

        seen = set()
        candidates: List[ParlayCandidate] = []

        def consider(legs: Tuple[ParlayLeg, ...]) -> None:
            if not self.compatible(legs):
                return
            key = "|".join(sorted(leg.outcome for leg in legs))
            if key in seen:
                return
            seen.add(key)
            candidates.append(self._candidate(match, legs))

        for pair in combinations(safe_legs, 2):
            consider(pair)

        pool = sorted(safe_legs, key=lambda leg: leg.probability, reverse=True)[:self.TRIPLE_POOL_SIZE]
        for triple in combinations(pool, 3):
            consider(triple)

        return candidates

    def generate(self, matches: Iterable[MatchMarkets]) -> List[ParlayCandidate]:
        """
        Candidates across all matches, globally deduplicated and ranked.

        Args:
            matches: Per-match market probabilities

        Returns:
            Candidates sorted by combined probability, highest first
        """
        final: List[ParlayCandidate] = []
        seen = set()
        match_count = 0

        for match in matches:
            match_count += 1
            for candidate in self.build_for_match(match):
                key = (candidate.match_id, candidate.outcome_key)
                if key in seen:
                    continue
                seen.add(key)
                final.append(candidate)

        final.sort(key=lambda c: c.combined_prob, reverse=True)
        logger.info(f"Generated {len(final)} same-game parlays from {match_count} matches")
        return final


def generate_candidates(
    matches: Iterable[MatchMarkets],
    min_leg_probability: float = SameGameParlayBuilder.MIN_LEG_PROBABILITY,
) -> List[ParlayCandidate]:
    """Module-level shortcut for ``SameGameParlayBuilder().generate``."""
    return SameGameParlayBuilder(min_leg_probability).generate(matches)
