"""Claim sweeper worker.

Moves claims on finished fixtures into the claim history. Runs on the
scheduler interval and on demand from the admin endpoint; a run with
nothing newly finished archives nothing.
"""

import logging

from goalsgoals.models.claim import SweepResult
from goalsgoals.services.claim_service import ClaimRegistry

logger = logging.getLogger("goalsgoals.claim_sweeper")

JOB_ID = "claim_sweeper"


async def sweep_finished_claims(registry: ClaimRegistry) -> SweepResult:
    result = await registry.sweep_finished()
    if result.missing_fixture_ids:
        logger.warning(
            "Claim sweep skipped %d claim(s) without fixture snapshot: %s",
            len(result.missing_fixture_ids), result.missing_fixture_ids,
        )
    if result.archived_count:
        logger.info("Claim sweep archived %d of %d", result.archived_count, result.checked_count)
    else:
        logger.debug("Claim sweep: nothing to archive (%d checked)", result.checked_count)
    return result
