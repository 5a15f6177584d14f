"""
Homepage API

Serves the homepage preload payload to the page renderer.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from src.preload.aggregator import PreloadAggregator


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/homepage", tags=["Homepage"])


def get_aggregator(request: Request) -> PreloadAggregator:
    return request.app.state.aggregator


@router.get("/preload")
async def homepage_preload(
    aggregator: PreloadAggregator = Depends(get_aggregator),
) -> Dict[str, Any]:
    """
    Sections, active campaigns and category stats in one payload.

    A sub-resource that no tier could serve comes back empty and is listed
    in metadata.failed.
    """
    result = await aggregator.load_degraded()
    return result.to_dict()
