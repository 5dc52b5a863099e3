"""Ready-made event handlers, usable as-is or as templates."""

import logging

from ghapp.events import Event, PullRequestEvent
from ghapp.github.pool import ClientPool

logger = logging.getLogger(__name__)


def echo_handler(event: Event) -> None:
    """Log every event that makes it through verification."""
    logger.info(
        "Received %s event (action=%s, installation=%s)",
        event.kind, getattr(event, "action", None), getattr(event, "installation_id", None),
    )
    logger.debug("%r", event)


class DeleteMergedBranches:
    """Deletes the head branch of a pull request once it has been merged."""

    def __init__(self, pool: ClientPool):
        self._pool = pool

    async def __call__(self, event: Event) -> bool:
        if not isinstance(event, PullRequestEvent):
            return False
        pr = event.pull_request
        if pr is None or not pr.merged or pr.head is None or event.installation_id is None:
            return False

        repo = event.repository
        if repo is None or repo.owner is None:
            logger.warning("Merged PR %s has no repository; not deleting branch", pr.html_url)
            return False
        if pr.head.repo is not None and pr.head.repo.full_name != repo.full_name:
            # branch lives in a fork we have no access to
            return False

        logger.info("Deleting branch '%s' in: %s", pr.head.ref, pr.html_url)
        client = await self._pool.for_installation(event.installation_id)
        await client.delete_ref(repo.owner.login, repo.name, f"heads/{pr.head.ref}")
        return True
