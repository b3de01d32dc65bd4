import pytest
from sqlalchemy import func, select

from eventlog.event_rules import DESCRIPTION_MAX_LENGTH
from eventlog.models.hash_tag import HashTag
from eventlog.services.hash_tags import HashTagService, hash_tag_names

pytestmark = pytest.mark.anyio


def test_hash_tag_names_are_lowercased_and_unique():
    text = "Met #Alice and #bob, then #alice again"
    assert hash_tag_names(text) == ["alice", "bob"]


@pytest.mark.parametrize(
    "text",
    [
        "no tags here",
        "issue #42",
        "email a#b",
        "it&#39;s quoted",
        "## heading",
        "",
        None,
    ],
)
def test_non_tags_are_ignored(text):
    assert hash_tag_names(text) == []


def test_unicode_and_underscores():
    assert hash_tag_names("#café and #_draft and #v2") == ["café", "_draft", "v2"]


async def test_extract_creates_missing_tags(session, user):
    tags = await HashTagService(session).extract(user, "Planning #Roadmap with #team")

    assert [t.name for t in tags] == ["roadmap", "team"]
    assert all(t.id is not None for t in tags)
    assert all(t.user_id == user.id for t in tags)


async def test_extract_reuses_existing_tags(session, user):
    service = HashTagService(session)
    first = await service.extract(user, "#roadmap")
    second = await service.extract(user, "More #ROADMAP and #new")

    assert second[0].id == first[0].id
    assert [t.name for t in second] == ["roadmap", "new"]
    count = await session.scalar(select(func.count(HashTag.id)))
    assert count == 2


async def test_tags_are_scoped_per_user(session, user_factory):
    ada = await user_factory("ada")
    bob = await user_factory("bob")
    service = HashTagService(session)

    ada_tags = await service.extract(ada, "#shared")
    bob_tags = await service.extract(bob, "#shared")

    assert ada_tags[0].id != bob_tags[0].id
    assert bob_tags[0].user_id == bob.id


async def test_extract_without_tags_returns_empty(session, user):
    assert await HashTagService(session).extract(user, "quiet day") == []


async def test_long_tag_fits_the_name_column(session, user):
    long_name = "a" * 150
    tags = await HashTagService(session).extract(user, f"Notes #{long_name}")

    assert [t.name for t in tags] == [long_name]
    assert HashTag.__table__.c.name.type.length >= DESCRIPTION_MAX_LENGTH
