"""
Latency measurement for provider calls.
`measure` times one named stage of a submit; the controller logs one
`LatencyReport` per request, whether it succeeded or not.
"""

import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict

from voicechat.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class LatencyReport:
    session_id: str
    request_id: str
    provider: str
    call: str = "chat"  # chat | vision
    outcome: str = "pending"
    stages: Dict[str, float] = field(default_factory=dict)

    def record(self, stage: str, elapsed_ms: float) -> None:
        self.stages[stage] = round(elapsed_ms, 2)

    @property
    def total_ms(self) -> float:
        return round(sum(self.stages.values()), 2)

    def log(self) -> None:
        logger.info(
            "Request latency report",
            extra={
                "session_id": self.session_id,
                "request_id": self.request_id,
                "provider": self.provider,
                "call": self.call,
                "outcome": self.outcome,
                **{f"latency_{k}_ms": v for k, v in self.stages.items()},
                "latency_total_ms": self.total_ms,
            },
        )


@asynccontextmanager
async def measure(report: LatencyReport, stage: str) -> AsyncIterator[None]:
    t0 = time.perf_counter()
    try:
        yield
    finally:
        report.record(stage, (time.perf_counter() - t0) * 1000)
