from __future__ import annotations

import logging
import re
from typing import List, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventlog.models.hash_tag import HashTag
from eventlog.models.user import User

logger = logging.getLogger("hash_tags")

# '#' + letter/underscore + word chars, not glued to a preceding word or '&' (entities)
HASH_TAG_RE = re.compile(r"(?<![\w&#])#([^\W\d]\w*)", re.UNICODE)


def hash_tag_names(text: str | None) -> List[str]:
    """Lower-cased tag names in order of first appearance, without duplicates."""

    names: List[str] = []
    seen = set()
    for match in HASH_TAG_RE.finditer(text or ""):
        name = match.group(1).lower()
        if name not in seen:
            seen.add(name)
            names.append(name)
    return names


class HashTagExtractor(Protocol):
    async def extract(self, user: User, text: str) -> Sequence[HashTag]:  # pragma: no cover - protocol
        ...


class HashTagService:
    """Resolve the hashtags mentioned in a text to the user's ``HashTag`` rows."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def extract(self, user: User, text: str) -> List[HashTag]:
        names = hash_tag_names(text)
        if not names:
            return []

        existing = (
            await self.session.execute(
                select(HashTag).where(HashTag.user_id == user.id, HashTag.name.in_(names))
            )
        ).scalars().all()
        by_name = {tag.name: tag for tag in existing}

        created = []
        for name in names:
            if name not in by_name:
                tag = HashTag(user_id=user.id, name=name)
                self.session.add(tag)
                by_name[name] = tag
                created.append(name)
        if created:
            await self.session.flush()
            logger.info("Created hash tags %s for user %s", created, user.id)

        return [by_name[name] for name in names]


__all__ = ["HASH_TAG_RE", "HashTagExtractor", "HashTagService", "hash_tag_names"]
