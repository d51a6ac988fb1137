"""
Search predicate compiler.

A query string is split into at most MAX_SEARCH_TOKENS tokens. Each token
becomes a typed predicate:

    @name   -> OwnerExact  (owner name, case-insensitive)
    #name   -> TagExact    (tag name, case-insensitive)
    word    -> Fuzzy       (substring of title, owner name or any tag name)

Every predicate compiles to a SELECT of candidate photo ids. The candidate
sets are intersected, so a photo must satisfy every token.
"""
from dataclasses import dataclass
from typing import List

from sqlalchemy import desc, func, intersect, or_, select

from .config import MAX_SEARCH_TOKENS
from .database import Photo, Tag, User, photo_tags


def _like_pattern(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@dataclass(frozen=True)
class OwnerExact:
    name: str

    def compile(self):
        return (
            select(Photo.id)
            .join(User, User.id == Photo.owner_id)
            # Both sides go through the database lower() so they fold the same way.
            .where(func.lower(User.name) == func.lower(self.name))
        )


@dataclass(frozen=True)
class TagExact:
    name: str

    def compile(self):
        return (
            select(Photo.id)
            .join(photo_tags, photo_tags.c.photo_id == Photo.id)
            .join(Tag, Tag.id == photo_tags.c.tag_id)
            # Stored tag names are already lowercased by normalize_tags.
            .where(Tag.name == self.name.lower())
        )


@dataclass(frozen=True)
class Fuzzy:
    text: str

    def compile(self):
        pattern = _like_pattern(self.text)
        return (
            select(Photo.id)
            .join(User, User.id == Photo.owner_id)
            .outerjoin(photo_tags, photo_tags.c.photo_id == Photo.id)
            .outerjoin(Tag, Tag.id == photo_tags.c.tag_id)
            .where(or_(
                Photo.title.ilike(pattern, escape="\\"),
                User.name.ilike(pattern, escape="\\"),
                Tag.name.ilike(pattern, escape="\\"),
            ))
        )


def parse_token(token: str):
    if token.startswith("@"):
        return OwnerExact(token[1:])
    if token.startswith("#"):
        return TagExact(token[1:])
    return Fuzzy(token)


def parse_query(q: str, max_tokens: int = MAX_SEARCH_TOKENS) -> List:
    """Splits on whitespace and classifies each token. Extra tokens are ignored."""
    return [parse_token(token) for token in (q or "").split()[:max_tokens]]


def compile_candidates(predicates):
    """
    Returns a subquery with a single `id` column: the intersection of the
    candidate ids of every predicate.
    """
    if not predicates:
        raise ValueError("At least one search predicate is required")
    selects = [p.compile() for p in predicates]
    if len(selects) == 1:
        return selects[0].distinct().subquery("candidates")
    return intersect(*selects).subquery("candidates")


def ranked(stmt):
    """Orders a photo query by score, then most recent first."""
    return stmt.order_by(desc(Photo.up_votes - Photo.down_votes), desc(Photo.created_at), desc(Photo.id))


def compile_search(predicates):
    """
    Builds the (count, page) statement pair for a list of predicates.
    The page statement still needs .limit()/.offset().
    """
    candidates = compile_candidates(predicates)
    count_stmt = select(func.count()).select_from(candidates)
    page_stmt = ranked(select(Photo).where(Photo.id.in_(select(candidates.c.id))))
    return count_stmt, page_stmt
