"""Lifetime attempt/success counters for each retrieval method."""
from dataclasses import dataclass, field
from typing import Dict

DIRECT_FETCH = "direct_fetch"
LIGHT_ENGINE = "light_engine"
FULL_ENGINE = "full_engine"
PDF = "pdf"

TRACKED_METHODS = (DIRECT_FETCH, LIGHT_ENGINE, FULL_ENGINE, PDF)


@dataclass
class MethodCounter:
    attempts: int = 0
    successes: int = 0

    @property
    def success_rate(self) -> str:
        if self.attempts == 0:
            return "0%"
        return f"{self.successes / self.attempts * 100:.1f}%"


@dataclass
class StatsTracker:
    counters: Dict[str, MethodCounter] = field(
        default_factory=lambda: {method: MethodCounter() for method in TRACKED_METHODS}
    )

    def record_attempt(self, method: str) -> None:
        self.counters[method].attempts += 1

    def record_success(self, method: str) -> None:
        self.counters[method].successes += 1

    def success_rate(self, method: str) -> str:
        return self.counters[method].success_rate

    def snapshot(self) -> Dict[str, Dict]:
        snapshot: Dict[str, Dict] = {
            method: {"attempts": counter.attempts, "successes": counter.successes}
            for method, counter in self.counters.items()
        }
        snapshot["success_rates"] = {method: counter.success_rate for method, counter in self.counters.items()}
        return snapshot
