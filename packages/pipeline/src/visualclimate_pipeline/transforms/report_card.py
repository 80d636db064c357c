"""
transforms/report_card.py — Five-domain climate report card.

Domains (weight in total) and their indicators (weight within domain):

  EMISSIONS       30%  EN.GHG.CO2.PC.CE.AR5 50% inv, DERIVED.CO2_PER_GDP 30% inv,
                       DERIVED.DECOUPLING 20%
  ENERGY          25%  EMBER.RENEWABLE.PCT 60%, EMBER.CARBON.INTENSITY 40% inv
  ECONOMY         15%  NY.GDP.PCAP.CD 50%, DERIVED.CO2_PER_GDP 50% inv
  RESPONSIBILITY  15%  OWID.SHARE_GLOBAL_CUMULATIVE_CO2 100% inv
  RESILIENCE      15%  NDGAIN.READINESS 60%, NDGAIN.VULNERABILITY 40% inv

Scoring:
  1. Take each country's latest value per indicator.
  2. Min-max normalize each indicator to 0-100 across countries (50 when
     every country has the same value); inverse indicators become 100 - x.
  3. A domain score is the weighted mean of the indicators present, or
     None when they carry less than half the domain's weight.
  4. The total is the domain-weighted mean of the domains present; at
     least three domains are required, otherwise the country is skipped.

Scores are rounded to one decimal. Grades: A+ >= 90, A >= 80, B+ >= 70,
B >= 60, C+ >= 50, C >= 40, D >= 25, F below; stored as 7..0.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

import polars as pl

from visualclimate_shared.constants import (
    CO2_PER_CAPITA_CODE,
    CO2_PER_GDP_CODE,
    DECOUPLING_CODE,
    DERIVED_SOURCE_LABEL,
    GDP_PER_CAPITA_CODE,
    RENEWABLE_SHARE_CODE,
    REPORT_GRADE_CODE,
    REPORT_SCORE_YEAR,
    REPORT_TOTAL_CODE,
)
from visualclimate_pipeline.transforms.classification import SeriesIndex
from visualclimate_pipeline.transforms.normalize import observations_frame

MIN_DOMAINS = 3
MIN_DOMAIN_WEIGHT = 0.5


@dataclass(frozen=True)
class ScoredIndicator:
    code: str
    weight: float
    inverse: bool = False


@dataclass(frozen=True)
class Domain:
    key: str
    score_code: str
    weight: float
    indicators: tuple[ScoredIndicator, ...]


DOMAINS: tuple[Domain, ...] = (
    Domain(
        "EMISSIONS",
        "REPORT.EMISSIONS_SCORE",
        0.30,
        (
            ScoredIndicator(CO2_PER_CAPITA_CODE, 0.50, inverse=True),
            ScoredIndicator(CO2_PER_GDP_CODE, 0.30, inverse=True),
            ScoredIndicator(DECOUPLING_CODE, 0.20),
        ),
    ),
    Domain(
        "ENERGY",
        "REPORT.ENERGY_SCORE",
        0.25,
        (
            ScoredIndicator(RENEWABLE_SHARE_CODE, 0.60),
            ScoredIndicator("EMBER.CARBON.INTENSITY", 0.40, inverse=True),
        ),
    ),
    Domain(
        "ECONOMY",
        "REPORT.ECONOMY_SCORE",
        0.15,
        (
            ScoredIndicator(GDP_PER_CAPITA_CODE, 0.50),
            ScoredIndicator(CO2_PER_GDP_CODE, 0.50, inverse=True),
        ),
    ),
    Domain(
        "RESPONSIBILITY",
        "REPORT.RESPONSIBILITY_SCORE",
        0.15,
        (ScoredIndicator("OWID.SHARE_GLOBAL_CUMULATIVE_CO2", 1.00, inverse=True),),
    ),
    Domain(
        "RESILIENCE",
        "REPORT.RESILIENCE_SCORE",
        0.15,
        (
            ScoredIndicator("NDGAIN.READINESS", 0.60),
            ScoredIndicator("NDGAIN.VULNERABILITY", 0.40, inverse=True),
        ),
    ),
)

# (lower bound, grade, stored value), best first
GRADES: tuple[tuple[float, str, int], ...] = (
    (90, "A+", 7),
    (80, "A", 6),
    (70, "B+", 5),
    (60, "B", 4),
    (50, "C+", 3),
    (40, "C", 2),
    (25, "D", 1),
    (0, "F", 0),
)


def input_codes() -> list[str]:
    """Every indicator the report card reads, first-seen order."""
    return list(dict.fromkeys(ind.code for d in DOMAINS for ind in d.indicators))


def to_grade(score: float) -> tuple[str, int]:
    for bound, grade, value in GRADES:
        if score >= bound:
            return grade, value
    return "F", 0


def _round1(value: float) -> float:
    # one decimal, halves up
    return math.floor(value * 10 + 0.5) / 10


@dataclass
class ReportCard:
    country_iso3: str
    domains: dict[str, float | None] = field(default_factory=dict)
    total: float = 0.0
    grade: str = "F"

    @property
    def grade_value(self) -> int:
        return to_grade(self.total)[1]


def normalize_latest(index: SeriesIndex, codes: list[str]) -> dict[str, dict[str, float]]:
    """country → code → 0-100 score of its latest value among all countries."""
    latest: dict[str, dict[str, float]] = {}
    for country in index.countries():
        for code in codes:
            value = index.latest(country, code)
            if value is not None:
                latest.setdefault(code, {})[country] = value

    scores: dict[str, dict[str, float]] = {}
    for code, by_country in latest.items():
        lo, hi = min(by_country.values()), max(by_country.values())
        spread = hi - lo
        for country, value in by_country.items():
            scores.setdefault(country, {})[code] = (
                50.0 if spread == 0 else (value - lo) / spread * 100
            )
    return scores


def domain_score(domain: Domain, scores: dict[str, float]) -> float | None:
    weighted = 0.0
    weight = 0.0
    for ind in domain.indicators:
        if ind.code not in scores:
            continue
        s = scores[ind.code]
        if ind.inverse:
            s = 100 - s
        weighted += s * ind.weight
        weight += ind.weight
    return weighted / weight if weight >= MIN_DOMAIN_WEIGHT else None


def score_countries(index: SeriesIndex) -> tuple[list[ReportCard], int]:
    """
    Report cards for every country with enough domains.

    Returns:
        (cards, skipped) where skipped counts countries with fewer than
        MIN_DOMAINS scorable domains.
    """
    normalized = normalize_latest(index, input_codes())
    cards: list[ReportCard] = []
    skipped = 0
    for country in sorted(normalized):
        domains = {d.key: domain_score(d, normalized[country]) for d in DOMAINS}
        valid = [d for d in DOMAINS if domains[d.key] is not None]
        if len(valid) < MIN_DOMAINS:
            skipped += 1
            continue
        total = _round1(
            sum(domains[d.key] * d.weight for d in valid) / sum(d.weight for d in valid)
        )
        cards.append(
            ReportCard(
                country_iso3=country,
                domains={k: (None if v is None else _round1(v)) for k, v in domains.items()},
                total=total,
                grade=to_grade(total)[0],
            )
        )
    return cards, skipped


def report_card_frame(cards: list[ReportCard], year: int = REPORT_SCORE_YEAR) -> pl.DataFrame:
    """REPORT.* rows; a domain that could not be scored gets no row."""
    rows: list[dict[str, Any]] = []

    def push(country: str, code: str, value: float | None) -> None:
        if value is None:
            return
        rows.append(
            {
                "country_iso3": country,
                "indicator_code": code,
                "year": year,
                "value": float(value),
                "source": DERIVED_SOURCE_LABEL,
            }
        )

    for card in cards:
        for d in DOMAINS:
            push(card.country_iso3, d.score_code, card.domains.get(d.key))
        push(card.country_iso3, REPORT_TOTAL_CODE, card.total)
        push(card.country_iso3, REPORT_GRADE_CODE, card.grade_value)
    return observations_frame(rows)


def report_card_summary(cards: list[ReportCard], skipped: int, top_n: int = 10) -> dict[str, Any]:
    grades = {grade: 0 for _, grade, _ in GRADES}
    for card in cards:
        grades[card.grade] += 1
    ranked = sorted(cards, key=lambda c: c.total, reverse=True)
    return {
        "scored": len(cards),
        "skipped": skipped,
        "grades": grades,
        "top": [c.country_iso3 for c in ranked[:top_n]],
        "bottom": [c.country_iso3 for c in reversed(ranked[-top_n:])],
    }
