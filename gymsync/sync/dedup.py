"""One-time repair of duplicated template exercise rows.

A sync bug in earlier releases inserted the same exercise several times
into a template's children. This pass asks the backend to delete the
repeats, then pulls templates back down so the local copy matches.
It runs once per installation, whether or not it succeeds.
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional

from gymsync.logging_config import log_dedup
from gymsync.protocols import RemoteStore
from gymsync.storage.entity_store import DEDUP_FLAG, EntityStore, FlagStore
from gymsync.sync.reconciler import merge_collection

logger = logging.getLogger(__name__)


@dataclass
class DedupResult:
    ran: bool = False
    fixed: int = 0
    error: Optional[str] = None


async def run_dedup(
    remote: RemoteStore, store: EntityStore, flags: FlagStore, user_id: str
) -> DedupResult:
    """Run the repair if it has not run on this installation yet.

    Failures are logged and reported in the result, never raised. The
    completion flag is set either way.
    """
    if flags.is_set(DEDUP_FLAG):
        return DedupResult()

    result = DedupResult(ran=True)
    try:
        result.fixed = await remote.dedupe_template_exercises(user_id)
        templates = await remote.fetch_templates(user_id)
        store.set_state(
            lambda state: replace(
                state, templates=merge_collection(templates, state.templates, lambda t: t.id)[0]
            )
        )
        if result.fixed:
            logger.info(f"Removed {result.fixed} duplicate template exercises")
    except Exception as e:
        logger.error(f"Template dedup failed: {e}", exc_info=True)
        result.error = str(e)
    finally:
        flags.set(DEDUP_FLAG)

    log_dedup(user_id, result.fixed, result.error)
    return result
