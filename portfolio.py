"""Public, read-only portfolio assembled from every section for one user."""
import asyncio
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, status
from starlette.concurrency import run_in_threadpool

from context import AppContext, get_context
from database import PUBLIC_USER_PROJECTION, get_documents, public_user, to_public
from errors import BadRequest, NotFound, api_response
from resources import (
    CERTIFICATION,
    EDUCATION,
    EXPERIENCE,
    INTRODUCTION,
    PROJECT,
    SKILL,
    SOCIAL_LINK,
    TESTIMONIAL,
    ResourceSpec,
)

logger = logging.getLogger(__name__)

# response key -> (section, extra filter)
LIST_SECTIONS = (
    ("skills", SKILL, {}),
    ("projects", PROJECT, {"featured": True}),
    ("education", EDUCATION, {}),
    ("experience", EXPERIENCE, {}),
    ("certifications", CERTIFICATION, {}),
    ("social_links", SOCIAL_LINK, {}),
    ("testimonials", TESTIMONIAL, {}),
)


def _read_list(context: AppContext, spec: ResourceSpec, query: Dict[str, Any]) -> List[dict]:
    return [to_public(doc) for doc in get_documents(context.db, spec.collection, query, sort=spec.sort)]


def _read_introduction(context: AppContext, user_id) -> dict:
    return to_public(context.db[INTRODUCTION.collection].find_one({"user_id": user_id})) or {}


async def build_portfolio(context: AppContext, username: str) -> dict:
    username = (username or "").strip()
    if not username:
        raise BadRequest("Username is required")

    user = await run_in_threadpool(
        context.db["user"].find_one, {"username": username}, PUBLIC_USER_PROJECTION
    )
    if user is None:
        raise NotFound("User not found")
    user_id = user["_id"]

    # independent reads, no shared state between them
    introduction, *lists = await asyncio.gather(
        run_in_threadpool(_read_introduction, context, user_id),
        *(
            run_in_threadpool(_read_list, context, spec, {"user_id": user_id, **extra})
            for _, spec, extra in LIST_SECTIONS
        ),
    )

    portfolio = {"user": public_user(user), "introduction": introduction}
    for (key, _, _), records in zip(LIST_SECTIONS, lists):
        portfolio[key] = records
    logger.debug("Assembled portfolio for %s", username)
    return portfolio


router = APIRouter(prefix="/portfolio", tags=["portfolio"])


@router.get("/{username}")
async def get_portfolio(username: str, context: AppContext = Depends(get_context)):
    portfolio = await build_portfolio(context, username)
    return api_response(status.HTTP_200_OK, "Portfolio fetched successfully", {"portfolio": portfolio})
