"""HTTP routes for feed_aggregator.

Thin handlers over the FeedStore. Errors are returned as {"error": message}.
"""

import uuid
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Header, Request, Response
from pydantic import BaseModel

from feed_aggregator.models.schemas import Feed, FeedFollow, Post, User
from feed_aggregator.storage.database import FeedStore, StoreError

DEFAULT_POSTS_LIMIT = 10

router = APIRouter(prefix="/v1")


class ApiError(Exception):
    """An error to be rendered as a JSON error response."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class CreateUserBody(BaseModel):
    name: str = ""


class CreateFeedBody(BaseModel):
    name: str
    url: str


class CreateFeedFollowBody(BaseModel):
    feed_id: str


def get_store(request: Request) -> FeedStore:
    return request.app.state.store


async def get_authenticated_user(
    authorization: str = Header(default=""),
    store: FeedStore = Depends(get_store),
) -> User:
    """Resolve an ``Authorization: Apikey <key>`` header to a user."""
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Apikey" or not parts[1]:
        raise ApiError(400, "the Authorization key is malformed")

    user = await store.get_user_by_api_key(parts[1])
    if user is None:
        raise ApiError(401, "we were unable to find this user")
    return user


def _parse_uuid(value: str, message: str) -> str:
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise ApiError(400, message)


def _parse_limit(value: str) -> int:
    try:
        limit = int(value)
    except ValueError:
        return DEFAULT_POSTS_LIMIT
    return limit if limit > 0 else DEFAULT_POSTS_LIMIT


@router.get("/healthz")
async def healthz() -> Dict[str, str]:
    return {"status": "ok"}


@router.get("/err")
async def err() -> None:
    raise ApiError(500, "Internal Server Error")


@router.post("/users")
async def create_user(
    body: CreateUserBody, store: FeedStore = Depends(get_store)
) -> User:
    try:
        return await store.create_user(body.name)
    except StoreError:
        raise ApiError(500, "we couldn't create this user")


@router.get("/users")
async def get_user(user: User = Depends(get_authenticated_user)) -> User:
    return user


@router.get("/feeds")
async def list_feeds(store: FeedStore = Depends(get_store)) -> List[Feed]:
    try:
        return await store.list_feeds()
    except StoreError:
        raise ApiError(500, "something went wrong in the database")


@router.post("/feeds", status_code=201, response_model=None)
async def create_feed(
    body: CreateFeedBody,
    user: User = Depends(get_authenticated_user),
    store: FeedStore = Depends(get_store),
) -> Dict[str, Any]:
    """Create a feed and make its creator follow it."""
    try:
        feed = await store.create_feed(user.id, body.name, body.url)
        follow = await store.create_feed_follow(user.id, feed.id)
    except StoreError:
        raise ApiError(500, "couldn't create the feed for this user")
    return {"feed": feed, "feed_follow": follow}


@router.post("/feed_follows")
async def create_feed_follow(
    body: CreateFeedFollowBody,
    user: User = Depends(get_authenticated_user),
    store: FeedStore = Depends(get_store),
) -> FeedFollow:
    feed_id = _parse_uuid(body.feed_id, "the id you provided for feed is malformed")
    try:
        return await store.create_feed_follow(user.id, feed_id)
    except StoreError:
        raise ApiError(500, "something went wrong in the database")


@router.delete("/feed_follows/{feed_follow_id}", status_code=204)
async def delete_feed_follow(
    feed_follow_id: str, store: FeedStore = Depends(get_store)
) -> Response:
    follow_id = _parse_uuid(feed_follow_id, "the feed follow id you provided is wrong")
    try:
        deleted = await store.delete_feed_follow(follow_id)
    except StoreError:
        raise ApiError(500, "something went wrong in the database")
    if not deleted:
        raise ApiError(404, "feed follow not found")
    return Response(status_code=204)


@router.get("/feed_follows")
async def list_feed_follows(
    user: User = Depends(get_authenticated_user),
    store: FeedStore = Depends(get_store),
) -> List[FeedFollow]:
    try:
        return await store.list_feed_follows_for_user(user.id)
    except StoreError:
        raise ApiError(500, "something went wrong in the database")


@router.get("/posts")
async def list_posts(
    limit: str = "",
    user: User = Depends(get_authenticated_user),
    store: FeedStore = Depends(get_store),
) -> List[Post]:
    try:
        return await store.get_posts_for_user(user.id, _parse_limit(limit))
    except StoreError:
        raise ApiError(500, "something went wrong in the database")
