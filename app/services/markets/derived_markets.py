"""
Derived market probabilities from 1-X-2 odds, the score and the clock.

Model (a rate proxy, not a fitted model):

- Implied probabilities ``1/odds`` are normalised to sum to 1 (margin removed).
- Expected goals per side: ``P(win) * 1.5 + P(draw) * 0.5``.
- Time factor: ``max(0, 90 - elapsed) / 90``. ``elapsed`` defaults to 90, so a
  match without a clock only counts goals already scored.
- Over/under line L: deterministic over once goals already exceed L,
  otherwise ``1 - exp(-lambda / (L + 1))`` clamped to [0.01, 0.99], with
  ``lambda`` floored at 0.1. Under is always ``1 - over``.
- Team totals use each side's own scored + remaining expected goals, without
  the lambda floor.
- BTTS multiplies the two sides' scoring probabilities
  (``0.7 * P(win) + 0.5 * P(draw)``, clamped), treating them as independent.
  The score does not enter the BTTS estimate.
- Asian handicap h: ``home = P(home) + 0.1 * h``, ``away = P(away) - 0.1 * h``,
  clamped to [0.01, 0.99]; h = 0 returns the normalised probabilities.
- Optional provider baseline (the stored ``additional_markets`` block): where
  it prices a line, the live estimate is blended with it. The baseline weight
  falls from 0.8 at kickoff to 0.3 late in the match, and the blended pair is
  clamped and renormalised. Lines already settled by the score stay
  deterministic.

The independence assumptions ignore real correlation between totals and
BTTS; a joint scoreline model (bivariate Poisson) would be needed to capture it.

Usage:
    table = compute_markets({"home": 1.8, "draw": 3.4, "away": 4.5}, {"home": 0, "away": 0}, 0)
    table.totals[2.5].over
"""
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from app.core.logging import get_logger

logger = get_logger(__name__)

TOTAL_LINES = (0.5, 1.5, 2.5, 3.5, 4.5)
TEAM_TOTAL_LINES = (0.5, 1.5, 2.5)
HANDICAP_LINES = (-1.5, -1.0, -0.5, 0.0, 0.5, 1.0, 1.5)

REGULATION_MINUTES = 90
WIN_GOAL_WEIGHT = 1.5
DRAW_GOAL_WEIGHT = 0.5
WIN_SCORE_WEIGHT = 0.7
DRAW_SCORE_WEIGHT = 0.5
HANDICAP_STEP = 0.1
MIN_LAMBDA = 0.1
PROB_FLOOR = 0.01
PROB_CEILING = 0.99
BASELINE_WEIGHT_START = 0.8
BASELINE_WEIGHT_MIN = 0.3
BASELINE_WEIGHT_DECAY = 0.5


def clamp(value: float, low: float = PROB_FLOOR, high: float = PROB_CEILING) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class OverUnder:
    over: float
    under: float


@dataclass(frozen=True)
class HandicapProbability:
    home: float
    away: float


@dataclass(frozen=True)
class BttsProbability:
    yes: float
    no: float
    home_scores: float
    away_scores: float


@dataclass
class MarketProbabilityTable:
    """Derived markets for one match snapshot. Never persisted."""
    home: float
    draw: float
    away: float
    home_goals: int
    away_goals: int
    home_expected_goals: float  # scored + remaining
    away_expected_goals: float
    total_expected_goals: float
    time_factor: float
    totals: Dict[float, OverUnder] = field(default_factory=dict)
    team_totals: Dict[str, Dict[float, OverUnder]] = field(default_factory=dict)
    btts: Optional[BttsProbability] = None
    asian_handicap: Dict[float, HandicapProbability] = field(default_factory=dict)

    @property
    def current_goals(self) -> int:
        return self.home_goals + self.away_goals

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly form; line keys are rendered as strings ("2.5")."""
        def ou(table: Dict[float, OverUnder]) -> Dict[str, Dict[str, float]]:
            return {str(line): {"over": p.over, "under": p.under} for line, p in table.items()}

        return {
            "probabilities": {"home": self.home, "draw": self.draw, "away": self.away},
            "expectedGoals": {
                "home": self.home_expected_goals,
                "away": self.away_expected_goals,
                "total": self.total_expected_goals,
            },
            "overUnder": ou(self.totals),
            "teamTotals": {side: ou(lines) for side, lines in self.team_totals.items()},
            "btts": {"yes": self.btts.yes, "no": self.btts.no} if self.btts else None,
            "asianHandicap": {
                str(line): {"home": p.home, "away": p.away}
                for line, p in self.asian_handicap.items()
            },
        }


def _positive_odd(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        odd = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(odd) or odd <= 0:
        return None
    return odd


def _goals(score: Optional[Mapping[str, Any]], side: str) -> int:
    if not score:
        return 0
    try:
        return max(0, int(score.get(side) or 0))
    except (TypeError, ValueError):
        return 0


def normalize_odds(odds: Optional[Mapping[str, Any]]) -> Optional[Dict[str, float]]:
    """
    Margin-free 1-X-2 probabilities.

    Returns:
        {"home", "draw", "away"} summing to 1, or None if any odd is missing
        or non-positive
    """
    if not odds:
        return None
    parsed = {side: _positive_odd(odds.get(side)) for side in ("home", "draw", "away")}
    if any(v is None for v in parsed.values()):
        return None

    implied = {side: 1.0 / odd for side, odd in parsed.items()}
    total = sum(implied.values())
    return {side: p / total for side, p in implied.items()}


Pair = Tuple[float, float]


def baseline_weight(elapsed: float) -> float:
    """Share of a provider baseline in a blended line: 0.8 at kickoff, 0.3 at full time."""
    weight = BASELINE_WEIGHT_START - (elapsed / REGULATION_MINUTES) * BASELINE_WEIGHT_DECAY
    return max(BASELINE_WEIGHT_MIN, min(BASELINE_WEIGHT_START, weight))


def _line_key(line: float) -> str:
    return f"{line:.1f}".replace(".", "_")


def _probability(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        p = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(p) or p < 0.0 or p > 1.0:
        return None
    return p


def baseline_pair(block: Any, first: str, second: str) -> Optional[Pair]:
    """Read a two-way probability pair from a provider market block; None unless both are valid."""
    if not isinstance(block, Mapping):
        return None
    a = _probability(block.get(first))
    b = _probability(block.get(second))
    if a is None or b is None:
        return None
    return a, b


def baseline_line(block: Any, line: float) -> Any:
    """Look up a line in a provider block keyed "2_5" (or "2.5")."""
    if not isinstance(block, Mapping):
        return None
    value = block.get(_line_key(line))
    return value if value is not None else block.get(str(line))


def blend(live: Pair, baseline: Optional[Pair], weight: float) -> Pair:
    """Weighted mix of a live pair and a baseline pair, clamped then renormalised."""
    if baseline is None:
        return live
    first = clamp(baseline[0] * weight + live[0] * (1.0 - weight))
    second = clamp(baseline[1] * weight + live[1] * (1.0 - weight))
    total = first + second
    return first / total, second / total


def over_under(
    goals: int,
    expected: float,
    line: float,
    min_lambda: float = 0.0,
    baseline: Optional[Pair] = None,
    weight: float = 0.0,
) -> OverUnder:
    """
    Over/under for one line given goals already scored and expected final goals.

    Args:
        goals: Goals already scored on this market
        expected: Expected final goals (scored + remaining)
        line: Goal line
        min_lambda: Floor for the Poisson rate; match totals use MIN_LAMBDA
        baseline: Provider (over, under) pair to blend with
        weight: Baseline share in the blend
    """
    if goals > line:
        return OverUnder(over=1.0, under=0.0)
    lam = max(min_lambda, expected)
    over = clamp(1.0 - math.exp(-lam / (line + 1.0)))
    over, under = blend((over, 1.0 - over), baseline, weight)
    return OverUnder(over=over, under=under)


def asian_handicap(
    home: float,
    away: float,
    line: float,
    baseline: Optional[Pair] = None,
    weight: float = 0.0,
) -> HandicapProbability:
    if line == 0:
        live = (home, away)
    else:
        shift = HANDICAP_STEP * line
        live = (clamp(home + shift), clamp(away - shift))
    home_p, away_p = blend(live, baseline, weight)
    return HandicapProbability(home=home_p, away=away_p)


def compute_markets(
    odds: Optional[Mapping[str, Any]],
    current_score: Optional[Mapping[str, Any]] = None,
    elapsed_minutes: Optional[float] = None,
    baseline: Optional[Mapping[str, Any]] = None,
) -> Optional[MarketProbabilityTable]:
    """
    Compute the derived market table for one match snapshot.

    Args:
        odds: Decimal 1-X-2 odds {"home", "draw", "away"}
        current_score: {"home", "away"} goals; missing means 0-0
        elapsed_minutes: Match clock; None means no time remains
        baseline: Provider market block (``additional_markets``) to blend
            with; lines it does not price keep the live estimate

    Returns:
        MarketProbabilityTable, or None when the odds are unusable
    """
    probs = normalize_odds(odds)
    if probs is None:
        return None

    p_home, p_draw, p_away = probs["home"], probs["draw"], probs["away"]
    home_goals = _goals(current_score, "home")
    away_goals = _goals(current_score, "away")

    elapsed = REGULATION_MINUTES if elapsed_minutes is None else max(0.0, float(elapsed_minutes))
    time_factor = max(0.0, REGULATION_MINUTES - elapsed) / REGULATION_MINUTES

    home_rate = p_home * WIN_GOAL_WEIGHT + p_draw * DRAW_GOAL_WEIGHT
    away_rate = p_away * WIN_GOAL_WEIGHT + p_draw * DRAW_GOAL_WEIGHT
    home_expected = home_goals + home_rate * time_factor
    away_expected = away_goals + away_rate * time_factor
    total_expected = home_expected + away_expected
    total_goals = home_goals + away_goals

    baseline = baseline if isinstance(baseline, Mapping) else {}
    weight = baseline_weight(elapsed)

    def totals_baseline(line: float) -> Optional[Pair]:
        return baseline_pair(baseline_line(baseline.get("totals"), line), "over", "under")

    def team_baseline(side: str, line: float) -> Optional[Pair]:
        sides = baseline.get("team_totals")
        block = sides.get(side) if isinstance(sides, Mapping) else None
        return baseline_pair(baseline_line(block, line), "over", "under")

    def handicap_baseline(line: float) -> Optional[Pair]:
        return baseline_pair(baseline_line(baseline.get("asian_handicap"), line), "home", "away")

    team_totals = {}
    for side, goals, expected in (("home", home_goals, home_expected), ("away", away_goals, away_expected)):
        team_totals[side] = {
            line: over_under(goals, expected, line, baseline=team_baseline(side, line), weight=weight)
            for line in TEAM_TOTAL_LINES
        }

    home_scores = clamp(WIN_SCORE_WEIGHT * p_home + DRAW_SCORE_WEIGHT * p_draw)
    away_scores = clamp(WIN_SCORE_WEIGHT * p_away + DRAW_SCORE_WEIGHT * p_draw)
    btts_live = home_scores * away_scores
    btts_yes, btts_no = blend(
        (btts_live, 1.0 - btts_live), baseline_pair(baseline.get("btts"), "yes", "no"), weight
    )

    return MarketProbabilityTable(
        home=p_home,
        draw=p_draw,
        away=p_away,
        home_goals=home_goals,
        away_goals=away_goals,
        home_expected_goals=home_expected,
        away_expected_goals=away_expected,
        total_expected_goals=total_expected,
        time_factor=time_factor,
        totals={
            line: over_under(
                total_goals, total_expected, line,
                min_lambda=MIN_LAMBDA, baseline=totals_baseline(line), weight=weight,
            )
            for line in TOTAL_LINES
        },
        team_totals=team_totals,
        btts=BttsProbability(yes=btts_yes, no=btts_no, home_scores=home_scores, away_scores=away_scores),
        asian_handicap={
            line: asian_handicap(p_home, p_away, line, baseline=handicap_baseline(line), weight=weight)
            for line in HANDICAP_LINES
        },
    )
