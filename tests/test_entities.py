"""Tests for entity storage and audience validation."""

import pytest

from organic_groups.core.exceptions import InvalidGroupReference
from organic_groups.features.entities.service import create_entity, get_entity, update_entity
from organic_groups.features.groups.service import add_group_content_field


class TestAudienceValidation:

    @pytest.mark.asyncio
    async def test_reference_to_missing_entity(self, db, og, club):
        with pytest.raises(InvalidGroupReference, match="The entity 01HMISSING does not exist."):
            await create_entity(
                db, og, "node", "article", owner=club.member, references={"og_group_ref": ["01HMISSING"]}
            )

    @pytest.mark.asyncio
    async def test_reference_to_non_group(self, db, og, club, make_content):
        page = await make_content("node", "page", club.owner, label="About us")

        with pytest.raises(InvalidGroupReference, match="The entity About us is not a group."):
            await create_entity(
                db, og, "node", "article", owner=club.member, references={"og_group_ref": [page.id]}
            )

    @pytest.mark.asyncio
    async def test_reference_to_wrong_group_bundle(self, db, og, club):
        await add_group_content_field(
            db, og, "node", "event", "node", field_name="og_team_ref", target_bundles=["team"]
        )

        with pytest.raises(InvalidGroupReference, match="is not a valid group for og_team_ref"):
            await create_entity(
                db, og, "node", "event", owner=club.member, references={"og_team_ref": [club.group.id]}
            )

    @pytest.mark.asyncio
    async def test_update_references(self, db, og, club, make_content):
        article = await make_content("node", "article", club.member)

        await update_entity(db, og, article, references={"og_group_ref": [club.group.id]})

        loaded = await get_entity(db, "node", article.id)
        assert loaded.get_referenced_ids("og_group_ref") == [club.group.id]
        assert og.registry.resolve_groups(loaded) == {("node", club.group.id)}

    @pytest.mark.asyncio
    async def test_rejected_update_leaves_entity_unchanged(self, db, og, club, make_content):
        article = await make_content("node", "article", club.member, club.group, label="Opening theory")
        page = await make_content("node", "page", club.owner)

        with pytest.raises(InvalidGroupReference):
            await update_entity(
                db, og, article, label="Endgames", references={"og_group_ref": [club.group.id, page.id]}
            )

        assert article.label == "Opening theory"
        assert article.get_referenced_ids("og_group_ref") == [club.group.id]
        assert og.registry.resolve_groups(article) == {("node", club.group.id)}

    @pytest.mark.asyncio
    async def test_get_entity_checks_type(self, db, og, club):
        assert await get_entity(db, "node", club.group.id) is club.group
        assert await get_entity(db, "comment", club.group.id) is None
