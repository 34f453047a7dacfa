"""
Benchmark harness for Eisenhower classification.

Feeds labeled tasks through one or more providers and reports accuracy and
latency percentiles per provider.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from .provider import AiProvider
from .types import (
    AiContext,
    AiRequest,
    AiRequestOptions,
    AiRequestType,
    EisenhowerQuadrant,
    PriorityClassification,
)

logger = logging.getLogger(__name__)

# Case deadlines are relative to this moment
BENCHMARK_REFERENCE_TIME = "2026-02-10T09:00:00"


@dataclass(frozen=True)
class EisenhowerTestCase:
    id: int
    task_text: str
    expected_quadrant: EisenhowerQuadrant
    deadline: str | None = None
    category: str = "general"


@dataclass
class CaseResult:
    test_case: EisenhowerTestCase
    predicted_quadrant: EisenhowerQuadrant | None
    confidence: float
    latency_ms: float
    answered_by: str | None = None
    error: str | None = None

    @property
    def correct(self) -> bool:
        return self.predicted_quadrant == self.test_case.expected_quadrant


def percentile(values: Sequence[float], pct: float) -> float:
    """Nearest-rank percentile over sorted values (index ``int(pct/100 * (n-1))``)."""
    if not values:
        return 0.0
    ordered = sorted(values)
    index = int(pct / 100 * (len(ordered) - 1))
    return ordered[max(0, min(index, len(ordered) - 1))]


@dataclass
class ProviderResult:
    provider_id: str
    results: list[CaseResult] = field(default_factory=list)

    @property
    def total_cases(self) -> int:
        return len(self.results)

    @property
    def correct_count(self) -> int:
        return sum(1 for r in self.results if r.correct)

    @property
    def error_count(self) -> int:
        return sum(1 for r in self.results if r.error is not None)

    @property
    def accuracy(self) -> float:
        return self.correct_count / self.total_cases if self.total_cases else 0.0

    @property
    def latencies(self) -> list[float]:
        return [r.latency_ms for r in self.results]

    @property
    def latency_p50_ms(self) -> float:
        return percentile(self.latencies, 50)

    @property
    def latency_p95_ms(self) -> float:
        return percentile(self.latencies, 95)

    @property
    def latency_p99_ms(self) -> float:
        return percentile(self.latencies, 99)

    @property
    def average_latency_ms(self) -> float:
        return sum(self.latencies) / self.total_cases if self.total_cases else 0.0

    def accuracy_by_quadrant(self) -> dict[str, float]:
        per_quadrant: dict[str, float] = {}
        for quadrant in EisenhowerQuadrant:
            cases = [r for r in self.results if r.test_case.expected_quadrant == quadrant]
            if cases:
                per_quadrant[quadrant.value] = sum(1 for r in cases if r.correct) / len(cases)
        return per_quadrant


@dataclass
class BenchmarkReport:
    provider_results: list[ProviderResult]
    started_at: float
    duration_ms: float

    def get(self, provider_id: str) -> ProviderResult | None:
        for result in self.provider_results:
            if result.provider_id == provider_id:
                return result
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at,
            "duration_ms": self.duration_ms,
            "providers": {
                pr.provider_id: {
                    "accuracy": pr.accuracy,
                    "correct": pr.correct_count,
                    "total": pr.total_cases,
                    "errors": pr.error_count,
                    "latency_p50_ms": pr.latency_p50_ms,
                    "latency_p95_ms": pr.latency_p95_ms,
                    "latency_p99_ms": pr.latency_p99_ms,
                    "average_latency_ms": pr.average_latency_ms,
                    "accuracy_by_quadrant": pr.accuracy_by_quadrant(),
                }
                for pr in self.provider_results
            },
        }

    def to_markdown(self) -> str:
        lines = [
            "# AI Provider Benchmark Report",
            "",
            "| Provider | Accuracy | p50 | p95 | p99 | Avg |",
            "|----------|----------|-----|-----|-----|-----|",
        ]
        for pr in self.provider_results:
            lines.append(
                f"| {pr.provider_id} | {pr.accuracy:.0%} ({pr.correct_count}/{pr.total_cases}) "
                f"| {pr.latency_p50_ms:.0f}ms | {pr.latency_p95_ms:.0f}ms "
                f"| {pr.latency_p99_ms:.0f}ms | {pr.average_latency_ms:.0f}ms |"
            )

        for pr in self.provider_results:
            lines += ["", f"## {pr.provider_id}"]
            wrong = [r for r in pr.results if not r.correct]
            if not wrong:
                lines.append("All correct!")
                continue
            lines.append("| # | Task | Expected | Predicted | Confidence |")
            lines.append("|---|------|----------|-----------|------------|")
            for r in wrong:
                predicted = r.predicted_quadrant.value if r.predicted_quadrant else "ERROR"
                lines.append(
                    f"| {r.test_case.id} | {r.test_case.task_text[:50]} "
                    f"| {r.test_case.expected_quadrant.value} | {predicted} "
                    f"| {r.confidence:.0%} |"
                )
        return "\n".join(lines) + "\n"


class ProviderBenchmark:
    """Runs labeled cases through providers sequentially."""

    def __init__(
        self,
        cases: Sequence[EisenhowerTestCase] | None = None,
        reference_time: str = BENCHMARK_REFERENCE_TIME,
        min_confidence: float | None = None,
    ):
        self.cases = list(cases) if cases is not None else list(EISENHOWER_TEST_CASES)
        self.reference_time = reference_time
        self.min_confidence = min_confidence

    def _request(self, case: EisenhowerTestCase) -> AiRequest:
        return AiRequest(
            type=AiRequestType.CLASSIFY_PRIORITY,
            input=case.task_text,
            context=AiContext(current_time=self.reference_time, deadline=case.deadline),
            options=AiRequestOptions(min_confidence=self.min_confidence),
        )

    async def run_case(self, provider: AiProvider, case: EisenhowerTestCase) -> CaseResult:
        start = time.perf_counter()
        try:
            response = await provider.complete(self._request(case))
        except Exception as e:
            return CaseResult(
                test_case=case,
                predicted_quadrant=None,
                confidence=0.0,
                latency_ms=(time.perf_counter() - start) * 1000,
                error=f"{type(e).__name__}: {e}",
            )
        latency_ms = (time.perf_counter() - start) * 1000

        if not response.success or not isinstance(response.result, PriorityClassification):
            return CaseResult(
                test_case=case,
                predicted_quadrant=None,
                confidence=0.0,
                latency_ms=latency_ms,
                answered_by=response.metadata.provider,
                error=response.error or "No classification returned",
            )
        return CaseResult(
            test_case=case,
            predicted_quadrant=response.result.quadrant,
            confidence=response.result.confidence,
            latency_ms=latency_ms,
            answered_by=response.metadata.provider,
        )

    async def run(self, providers: dict[str, AiProvider]) -> BenchmarkReport:
        """Benchmark each provider over every case."""
        started_at = time.time()
        start = time.perf_counter()
        provider_results = []
        for provider_id, provider in providers.items():
            result = ProviderResult(provider_id=provider_id)
            for case in self.cases:
                result.results.append(await self.run_case(provider, case))
            logger.info(
                f"Benchmark {provider_id}: {result.accuracy:.0%} "
                f"({result.correct_count}/{result.total_cases}), p50 {result.latency_p50_ms:.1f}ms"
            )
            provider_results.append(result)

        return BenchmarkReport(
            provider_results=provider_results,
            started_at=started_at,
            duration_ms=(time.perf_counter() - start) * 1000,
        )


_Q = EisenhowerQuadrant

EISENHOWER_TEST_CASES: list[EisenhowerTestCase] = [
    # DO_FIRST
    EisenhowerTestCase(1, "Submit tax return before deadline tomorrow", _Q.DO_FIRST, "2026-02-11", "finance"),
    EisenhowerTestCase(2, "Fix critical production bug affecting all users", _Q.DO_FIRST, category="work"),
    EisenhowerTestCase(3, "Respond to client's urgent contract revision by EOD", _Q.DO_FIRST, "2026-02-10", "work"),
    EisenhowerTestCase(4, "Pick up child's prescription medication today", _Q.DO_FIRST, "2026-02-10", "family"),
    EisenhowerTestCase(5, "Prepare slides for board presentation in 2 hours", _Q.DO_FIRST, category="work"),
    EisenhowerTestCase(6, "Emergency plumber appointment for burst pipe", _Q.DO_FIRST, category="home"),
    EisenhowerTestCase(7, "Submit quarterly financial report due today", _Q.DO_FIRST, "2026-02-10", "work"),
    EisenhowerTestCase(8, "Call insurance company about claim deadline tomorrow", _Q.DO_FIRST, "2026-02-11", "finance"),
    EisenhowerTestCase(9, "Doctor appointment for persistent chest pain", _Q.DO_FIRST, category="health"),
    EisenhowerTestCase(10, "Security vulnerability patch deployment ASAP", _Q.DO_FIRST, category="work"),
    EisenhowerTestCase(11, "Renew expiring passport needed for trip next week", _Q.DO_FIRST, "2026-02-17", "travel"),
    EisenhowerTestCase(12, "Address customer data breach incident immediately", _Q.DO_FIRST, category="work"),
    # SCHEDULE
    EisenhowerTestCase(13, "Learn Kotlin Multiplatform for career growth", _Q.SCHEDULE, category="learning"),
    EisenhowerTestCase(14, "Create a 5-year financial plan", _Q.SCHEDULE, category="finance"),
    EisenhowerTestCase(15, "Start weekly exercise routine", _Q.SCHEDULE, category="health"),
    EisenhowerTestCase(16, "Plan team building retreat for next quarter", _Q.SCHEDULE, category="work"),
    EisenhowerTestCase(17, "Write technical blog post about architecture patterns", _Q.SCHEDULE, category="learning"),
    EisenhowerTestCase(18, "Schedule annual health checkup", _Q.SCHEDULE, category="health"),
    EisenhowerTestCase(19, "Research investment options for retirement fund", _Q.SCHEDULE, category="finance"),
    EisenhowerTestCase(20, "Mentor junior developer on design patterns", _Q.SCHEDULE, category="work"),
    EisenhowerTestCase(21, "Read 'Designing Data-Intensive Applications'", _Q.SCHEDULE, category="learning"),
    EisenhowerTestCase(22, "Plan family vacation for summer", _Q.SCHEDULE, category="family"),
    EisenhowerTestCase(23, "Set up automated backup system for important files", _Q.SCHEDULE, category="tech"),
    EisenhowerTestCase(24, "Develop a personal project roadmap for the year", _Q.SCHEDULE, category="personal"),
    EisenhowerTestCase(25, "Build an emergency savings fund of 6 months", _Q.SCHEDULE, category="finance"),
    # DELEGATE
    EisenhowerTestCase(26, "Reply to vendor's scheduling email", _Q.DELEGATE, category="work"),
    EisenhowerTestCase(27, "Attend optional team standup meeting", _Q.DELEGATE, category="work"),
    EisenhowerTestCase(28, "Process expense reports that are overdue", _Q.DELEGATE, "2026-02-10", "admin"),
    EisenhowerTestCase(29, "Answer phone call from telemarketer", _Q.DELEGATE, category="personal"),
    EisenhowerTestCase(30, "Forward meeting notes to absent colleague", _Q.DELEGATE, category="work"),
    EisenhowerTestCase(31, "Review and approve routine purchase orders", _Q.DELEGATE, category="admin"),
    EisenhowerTestCase(32, "Schedule office supply order for the team", _Q.DELEGATE, category="admin"),
    EisenhowerTestCase(33, "Update shared team calendar with meeting rooms", _Q.DELEGATE, category="admin"),
    EisenhowerTestCase(34, "Respond to non-urgent Slack messages from yesterday", _Q.DELEGATE, category="work"),
    EisenhowerTestCase(35, "Book conference room for next week's all-hands", _Q.DELEGATE, category="admin"),
    EisenhowerTestCase(36, "Fill out routine compliance training survey", _Q.DELEGATE, category="work"),
    EisenhowerTestCase(37, "Print handouts for tomorrow's workshop", _Q.DELEGATE, category="admin"),
    # ELIMINATE
    EisenhowerTestCase(38, "Browse social media feeds", _Q.ELIMINATE, category="personal"),
    EisenhowerTestCase(39, "Watch YouTube recommendations", _Q.ELIMINATE, category="personal"),
    EisenhowerTestCase(40, "Reorganize desk drawer", _Q.ELIMINATE, category="home"),
    EisenhowerTestCase(41, "Check gossip news websites", _Q.ELIMINATE, category="personal"),
    EisenhowerTestCase(42, "Scroll through online shopping deals", _Q.ELIMINATE, category="personal"),
    EisenhowerTestCase(43, "Re-sort Spotify playlists by mood", _Q.ELIMINATE, category="personal"),
    EisenhowerTestCase(44, "Compare phone case designs online", _Q.ELIMINATE, category="personal"),
    EisenhowerTestCase(45, "Read random Wikipedia articles", _Q.ELIMINATE, category="personal"),
    EisenhowerTestCase(46, "Play mobile games during work hours", _Q.ELIMINATE, category="personal"),
    EisenhowerTestCase(47, "Argue with strangers on Reddit", _Q.ELIMINATE, category="personal"),
    EisenhowerTestCase(48, "Watch unboxing videos on YouTube", _Q.ELIMINATE, category="personal"),
    EisenhowerTestCase(49, "Rearrange app icons on phone homescreen", _Q.ELIMINATE, category="personal"),
    EisenhowerTestCase(50, "Clean out old bookmarks in browser", _Q.ELIMINATE, category="personal"),
]


__all__ = [
    "BenchmarkReport",
    "CaseResult",
    "EISENHOWER_TEST_CASES",
    "EisenhowerTestCase",
    "ProviderBenchmark",
    "ProviderResult",
    "percentile",
]
