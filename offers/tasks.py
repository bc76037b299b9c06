from __future__ import annotations

import logging

from asgiref.sync import async_to_sync
from celery import shared_task
from django.conf import settings

from flight_desk.logging import clear_request_context, new_request_id, set_request_context
from offers.services.content import ContentClient

logger = logging.getLogger(__name__)


def warm_layout_targets() -> list[tuple[int, int]]:
    """``(lang_id, domain_id)`` pairs from ``WARM_LAYOUT_TARGETS`` entries like ``"1:1"``."""
    targets = []
    for item in settings.WARM_LAYOUT_TARGETS:
        lang_id, _, domain_id = item.partition(":")
        try:
            targets.append((int(lang_id), int(domain_id or 1)))
        except ValueError:
            logger.warning("Ignoring malformed warm target %r.", item)
    return targets


async def _warm(client: ContentClient, targets: list[tuple[int, int]]) -> dict[str, bool]:
    warmed = {}
    for lang_id, domain_id in targets:
        data = await client.layout(lang_id, domain_id)
        warmed[f"{lang_id}:{domain_id}"] = bool(data)
    return warmed


@shared_task(bind=True, soft_time_limit=60, time_limit=90)
def warm_layout_cache(self) -> dict:  # noqa: ARG001
    set_request_context(request_id=new_request_id())
    try:
        warmed = async_to_sync(_warm)(ContentClient(), warm_layout_targets())
        logger.info("Layout cache warm-up finished: %s", warmed)
        return {"warmed": warmed}
    finally:
        clear_request_context()
