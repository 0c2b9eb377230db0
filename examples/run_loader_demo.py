"""
Demo script for the batch loader without an AWS account.

Packs 2,000 generated rows into small batches and sends them through a
PrintTransport that only logs what it would upload. Every third upload fails
so the failure sink has something to write.
"""

import itertools
import random
import tempfile

from loguru import logger

from cs_loader import (
    BatchConfig,
    FileFailureSink,
    PipelineContext,
    RateLimiter,
    UploadCoordinator,
    UploadResult,
    TransportFault,
    run_pipeline,
)
from cs_loader.source import row_to_document


class PrintTransport:
    """Transport that logs batches instead of sending them."""

    _calls = itertools.count(1)

    def upload(self, payload: bytes, content_length: int) -> UploadResult:
        n = next(self._calls)
        if n % 3 == 0:
            raise TransportFault("simulated connection reset")
        logger.info(f"PrintTransport would send {content_length} bytes")
        return UploadResult(
            status="success", http_status_code=200, adds=payload.count(b'"type":"add"')
        )

    def close(self) -> None:
        logger.info("PrintTransport closed")


def rows(n: int):
    for i in range(n):
        yield {
            "id": i,
            "first_name": f"user{i}",
            "score": random.random(),
            "bio": "x" * random.randint(10, 400),
        }


def main():
    failures = tempfile.mkdtemp(prefix="cs-loader-demo-")

    ctx = PipelineContext(
        transport_factory=PrintTransport,
        rate_limiter=RateLimiter(100),
        failure_sink=FileFailureSink(failures),
    )
    coord = UploadCoordinator.for_mode(ctx, use_async=True, max_in_flight=2)

    logger.info("Starting loader demo - 2,000 rows, 50 KB batches")
    summary = run_pipeline(
        (row_to_document(r) for r in rows(2_000)),
        coord,
        config=BatchConfig(ceiling=50_000),
    )
    for line in summary.lines():
        logger.info(line)
    logger.info(f"Failed payloads written to {failures}")


if __name__ == "__main__":
    main()
