"""Reddit plugin: posts, comments and subreddits.

    from mdvault import Vault
    from mdvault.plugins.reddit import reddit

    vault = Vault("~/.mdvault", plugins=[reddit])
    top = await vault.reddit.posts.top_posts(limit=5)
    thread = await vault.reddit.comments.comment_thread(post_id=top[0].id)
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from mdvault.actions import define_query
from mdvault.plugin import PluginContext, TableConfig, define_plugin
from mdvault.record import Record
from mdvault.table import Table


class LimitInput(BaseModel):
    limit: int = Field(default=10, ge=0)


class CommentLimitInput(BaseModel):
    limit: int = Field(default=20, ge=0)


class SubredditInput(BaseModel):
    subreddit: str


class SearchInput(BaseModel):
    query: str = Field(min_length=1)


class PostInput(BaseModel):
    post_id: str


def _matches_post(post: Record, needle: str) -> bool:
    title = post.get("title") or ""
    selftext = post.get("selftext") or ""
    return needle in title.lower() or needle in selftext.lower()


# --- posts ---


@define_query(input=LimitInput)
async def top_posts(params: LimitInput, posts: Table) -> list[Record]:
    """Top posts by score."""
    return await posts.list(order_by="score", order="desc", limit=params.limit)


@define_query(input=SubredditInput)
async def by_subreddit(params: SubredditInput, posts: Table) -> list[Record]:
    """Posts from one subreddit, newest first."""
    return await posts.list(
        where={"subreddit": params.subreddit}, order_by="created_at", order="desc"
    )


@define_query(input=SearchInput)
async def search(params: SearchInput, posts: Table) -> list[Record]:
    """Case-insensitive search over post titles and self text."""
    needle = params.query.lower()
    return [p for p in await posts.list() if _matches_post(p, needle)]


# --- comments ---


@define_query(input=PostInput)
async def comment_thread(params: PostInput, comments: Table) -> list[dict[str, Any]]:
    """
    Comment tree for a post, oldest first at every level.

    Returns:
        Root comments as dicts, each with a nested "replies" list
    """
    records = await comments.list(
        where={"post_id": params.post_id}, order_by="created_at", order="asc"
    )
    children: dict[str | None, list[Record]] = {}
    for record in records:
        children.setdefault(record.get("parent_id"), []).append(record)

    def build(parent_id: str | None) -> list[dict[str, Any]]:
        return [
            {**c.to_dict(), "replies": build(c.id)} for c in children.get(parent_id, [])
        ]

    return build(None)


@define_query(input=CommentLimitInput)
async def top_comments(params: CommentLimitInput, comments: Table) -> list[Record]:
    """Top comments by score."""
    return await comments.list(order_by="score", order="desc", limit=params.limit)


# --- subreddits ---


@define_query(input=LimitInput)
async def trending(params: LimitInput, subreddits: Table) -> list[Record]:
    """Subreddits by subscriber count."""
    return await subreddits.list(order_by="subscribers", order="desc", limit=params.limit)


# --- plugin-level ---


@define_query
async def get_stats(_: Any, tables: PluginContext) -> dict[str, Any]:
    """Record counts plus the top post and comment."""
    top_post = await tables.posts.top_posts(limit=1)
    top_comment = await tables.comments.top_comments(limit=1)
    return {
        "posts": await tables.posts.count(),
        "comments": await tables.comments.count(),
        "subreddits": await tables.subreddits.count(),
        "top_post": top_post[0] if top_post else None,
        "top_comment": top_comment[0] if top_comment else None,
    }


@define_query
async def export_all(_: Any, tables: PluginContext) -> dict[str, Any]:
    """Every Reddit record, keyed by table."""
    return {
        "posts": await tables.posts.list(),
        "comments": await tables.comments.list(),
        "subreddits": await tables.subreddits.list(),
        "exported_at": datetime.now(timezone.utc),
    }


@define_query(input=SearchInput)
async def search_all(params: SearchInput, tables: PluginContext) -> dict[str, list[Record]]:
    """Search posts and comment bodies."""
    needle = params.query.lower()
    comments = await tables.comments.list()
    return {
        "posts": await tables.posts.search(query=params.query),
        "comments": [c for c in comments if needle in (c.get("body") or "").lower()],
    }


reddit = define_plugin(
    id="reddit",
    display_name="Reddit Integration",
    tables={
        "posts": TableConfig(
            schema={
                "title": {"type": "string", "required": True},
                "author": {"type": "string", "required": True},
                "subreddit": {"type": "string", "required": True},
                "score": {"type": "number", "default": 0},
                "num_comments": {"type": "number", "default": 0},
                "created_at": {"type": "date", "required": True},
                "url": {"type": "string"},
                "selftext": {"type": "string"},
                "is_video": {"type": "boolean", "default": False},
                "is_nsfw": {"type": "boolean", "default": False},
            },
            methods={
                "top_posts": top_posts,
                "by_subreddit": by_subreddit,
                "search": search,
            },
        ),
        "comments": TableConfig(
            schema={
                "body": {"type": "string", "required": True},
                "author": {"type": "string", "required": True},
                "post_id": {"type": "string", "required": True, "references": "posts"},
                "parent_id": {"type": "string", "references": "comments"},
                "score": {"type": "number", "default": 0},
                "created_at": {"type": "date", "required": True},
                "edited": {"type": "boolean", "default": False},
                "awards": {"type": "string[]"},
            },
            methods={
                "comment_thread": comment_thread,
                "top_comments": top_comments,
            },
        ),
        "subreddits": TableConfig(
            schema={
                "name": {"type": "string", "required": True, "unique": True},
                "title": {"type": "string"},
                "description": {"type": "string"},
                "subscribers": {"type": "number"},
                "created_at": {"type": "date"},
                "is_nsfw": {"type": "boolean", "default": False},
            },
            methods={"trending": trending},
        ),
    },
    methods={
        "get_stats": get_stats,
        "export_all": export_all,
        "search_all": search_all,
    },
)

plugins = [reddit]
