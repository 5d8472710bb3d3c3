"""Tests for OgMembership and the membership manager."""

from datetime import datetime, timezone

import pytest

from organic_groups.core.context import create_og_context
from organic_groups.core.exceptions import InvalidMembership
from organic_groups.features.entities.service import create_entity, delete_entity
from organic_groups.features.memberships.models import MembershipState, OgMembership, TYPE_DEFAULT
from organic_groups.features.memberships.service import (
    create_membership,
    delete_memberships,
    get_membership,
    get_memberships,
    get_membership_roles,
    get_user_groups,
    membership_has_permission,
    save_membership,
)
from organic_groups.features.permissions.catalog import ADMINISTRATOR, ANONYMOUS, AUTHENTICATED
from organic_groups.features.permissions.models import OgRole, RoleType
from organic_groups.features.users.models import ANONYMOUS_USER, AnonymousUser

from conftest import declare_club


def _role(name: str, role_type: RoleType = RoleType.STANDARD) -> OgRole:
    return OgRole(
        id=f"node-club-{name}",
        name=name,
        label=name,
        group_type="node",
        group_bundle="club",
        role_type=role_type,
        permissions=[f"{name} permission"],
    )


def _default_roles():
    return {
        ANONYMOUS: _role(ANONYMOUS, RoleType.ANONYMOUS),
        AUTHENTICATED: _role(AUTHENTICATED, RoleType.AUTHENTICATED),
    }


# =============================================================================
# MODEL
# =============================================================================


class TestOgMembershipModel:

    def test_anonymous_user_rejected(self):
        with pytest.raises(InvalidMembership):
            OgMembership().set_user(ANONYMOUS_USER)
        with pytest.raises(InvalidMembership):
            OgMembership().set_user(AnonymousUser())

    @pytest.mark.parametrize("uid", [None, "", "0"])
    def test_pre_save_requires_user(self, uid):
        membership = OgMembership(uid=uid, group_type="node", group_id="01HGROUP")

        with pytest.raises(InvalidMembership):
            membership.pre_save()

    def test_pre_save_requires_group(self):
        membership = OgMembership(uid="01HUSER")

        with pytest.raises(InvalidMembership):
            membership.pre_save()

    def test_pre_save_fills_default_field(self):
        membership = OgMembership(uid="01HUSER", group_type="node", group_id="01HGROUP")

        membership.pre_save()

        assert membership.get_field_name() == "og_group_ref"

    def test_set_roles_deduplicates(self):
        editor = _role("editor")
        membership = OgMembership().set_roles([editor, _role("editor"), _role("writer")])

        assert membership.get_roles_ids() == ["node-club-editor", "node-club-writer"]

    def test_add_and_revoke_role(self):
        membership = OgMembership().set_roles([])
        membership.add_role(_role("editor")).add_role(_role("editor"))

        assert membership.get_roles_ids() == ["node-club-editor"]
        assert membership.has_role("node-club-editor")
        assert membership.has_permission("editor permission", _default_roles())

        membership.revoke_role(_role("editor"))

        assert membership.get_roles() == []
        assert not membership.has_permission("editor permission", _default_roles())
        assert membership.has_permission("member permission", _default_roles())

    def test_active_membership_acts_as_member(self):
        defaults = _default_roles()
        membership = OgMembership().set_state(MembershipState.ACTIVE).set_roles([_role("editor")])

        roles = membership.get_effective_roles(defaults)

        assert [role.name for role in roles] == [AUTHENTICATED, "editor"]
        assert membership.has_permission("member permission", defaults)
        assert membership.has_permission("editor permission", defaults)
        assert not membership.has_permission("non-member permission", defaults)

    def test_member_role_listed_once(self):
        defaults = _default_roles()
        membership = OgMembership().set_state(MembershipState.ACTIVE).set_roles([defaults[AUTHENTICATED]])

        assert membership.get_effective_roles(defaults) == [defaults[AUTHENTICATED]]

    def test_pending_membership_acts_as_non_member(self):
        defaults = _default_roles()
        membership = OgMembership().set_state(MembershipState.PENDING).set_roles([_role("editor")])

        assert membership.get_effective_roles(defaults) == [defaults[ANONYMOUS]]
        assert membership.has_permission("non-member permission", defaults)
        assert not membership.has_permission("member permission", defaults)
        assert not membership.has_permission("editor permission", defaults)

    def test_blocked_membership_has_no_permissions(self):
        defaults = _default_roles()
        membership = OgMembership().set_state(MembershipState.BLOCKED).set_roles([_role("editor")])

        assert membership.get_effective_roles(defaults) == []
        assert not membership.has_permission("editor permission", defaults)
        assert not membership.has_permission("non-member permission", defaults)

    def test_state(self):
        membership = OgMembership().set_state("pending")

        assert membership.get_state() == MembershipState.PENDING
        assert not membership.is_active()

    def test_created_time(self):
        created = datetime(2020, 1, 1, tzinfo=timezone.utc)

        assert OgMembership().set_created_time(created).get_created_time() == created


# =============================================================================
# MANAGER
# =============================================================================


class TestMembershipManager:

    @pytest.mark.asyncio
    async def test_create_and_load(self, db, og, make_user):
        await declare_club(db, og)
        owner = await make_user("owner")
        user = await make_user("user")
        group = await create_entity(db, og, "node", "club", label="Club", owner=owner)

        saved = await save_membership(db, og, create_membership(og, user, group))

        loaded = await get_membership(db, user.id, "node", group.id)
        assert loaded.id == saved.id
        assert loaded.get_type() == TYPE_DEFAULT
        assert loaded.get_field_name() == "og_group_ref"
        assert loaded.get_state() == MembershipState.ACTIVE
        assert loaded.get_created_time() is not None

    @pytest.mark.asyncio
    async def test_membership_for_anonymous_fails(self, db, og, club):
        with pytest.raises(InvalidMembership):
            create_membership(og, ANONYMOUS_USER, club.group)

    @pytest.mark.asyncio
    async def test_save_rejects_empty_user(self, db, og, club):
        membership = OgMembership(uid="0", group_type="node", group_id=club.group.id)

        with pytest.raises(InvalidMembership):
            await save_membership(db, og, membership)

    @pytest.mark.asyncio
    async def test_membership_in_non_group_fails(self, db, og, club, make_content):
        page = await make_content("node", "page", club.owner)

        with pytest.raises(InvalidMembership, match="is not a group"):
            create_membership(og, club.member, page)

    @pytest.mark.asyncio
    async def test_roles_must_belong_to_group_bundle(self, db, og, club):
        foreign = OgRole(
            id="node-team-member",
            name=AUTHENTICATED,
            label="Member",
            group_type="node",
            group_bundle="team",
            role_type=RoleType.AUTHENTICATED,
        )

        with pytest.raises(InvalidMembership):
            create_membership(og, club.outsider, club.group, roles=[foreign])

    @pytest.mark.asyncio
    async def test_channels(self, db, og, club):
        await save_membership(db, og, create_membership(og, club.member, club.group, field_name="og_premium_ref"))

        default = await get_membership(db, club.member.id, "node", club.group.id, "og_group_ref")
        premium = await get_membership(db, club.member.id, "node", club.group.id, "og_premium_ref")

        assert default.id != premium.id
        assert len(await get_memberships(db, user_id=club.member.id)) == 2

    @pytest.mark.asyncio
    async def test_get_memberships_filters(self, db, og, club):
        membership = await get_membership(db, club.member.id, "node", club.group.id)
        await save_membership(db, og, membership.set_state(MembershipState.BLOCKED))

        active = await get_memberships(db, group_id=club.group.id, states=[MembershipState.ACTIVE])
        blocked = await get_memberships(db, group_id=club.group.id, states=["blocked"])

        assert {m.uid for m in active} == {club.other_member.id, club.group_admin.id}
        assert [m.uid for m in blocked] == [club.member.id]

    @pytest.mark.asyncio
    async def test_get_user_groups(self, db, og, club):
        second = await create_entity(db, og, "node", "club", label="Go club", owner=club.owner)
        await save_membership(
            db, og, create_membership(og, club.member, second, state=MembershipState.PENDING)
        )

        assert await get_user_groups(db, club.member.id) == {"node": [club.group.id]}
        groups = await get_user_groups(
            db, club.member.id, states=[MembershipState.ACTIVE, MembershipState.PENDING]
        )
        assert sorted(groups["node"]) == sorted([club.group.id, second.id])
        assert await get_user_groups(db, club.outsider.id) == {}
        assert await get_user_groups(db, None) == {}

    @pytest.mark.asyncio
    async def test_save_invalidates_cache(self, db, og, club):
        await og.access.get_user_permissions(db, club.group, club.outsider)
        assert og.cache.stats()["permissions"] == 1

        await save_membership(db, og, create_membership(og, club.outsider, club.group))

        assert og.cache.stats()["permissions"] == 0


class TestMembershipPermissions:

    @pytest.mark.asyncio
    async def test_active_member_has_member_permissions(self, db, og, club):
        membership = await get_membership(db, club.member.id, "node", club.group.id)

        assert membership.get_roles() == []
        assert await membership_has_permission(db, og, membership, "create article content")
        assert not await membership_has_permission(db, og, membership, "edit any article content")

    @pytest.mark.asyncio
    async def test_assigned_role_adds_to_member_role(self, db, og, club):
        membership = await get_membership(db, club.group_admin.id, "node", club.group.id)

        names = [role.name for role in await get_membership_roles(db, og, membership)]

        assert names == [AUTHENTICATED, ADMINISTRATOR]
        assert await membership_has_permission(db, og, membership, "edit any article content")
        assert await membership_has_permission(db, og, membership, "create article content")

    @pytest.mark.asyncio
    async def test_pending_member_has_non_member_permissions(self, db, og, club):
        membership = await get_membership(db, club.member.id, "node", club.group.id)
        await save_membership(db, og, membership.set_state(MembershipState.PENDING))

        assert await membership_has_permission(db, og, membership, "create newsletter_subscription comment")
        assert not await membership_has_permission(db, og, membership, "create article content")

    @pytest.mark.asyncio
    async def test_blocked_member_has_no_permissions(self, db, og, club):
        membership = await get_membership(db, club.group_admin.id, "node", club.group.id)
        await save_membership(db, og, membership.set_state(MembershipState.BLOCKED))

        assert await get_membership_roles(db, og, membership) == []
        assert not await membership_has_permission(db, og, membership, "edit any article content")
        assert not await membership_has_permission(db, og, membership, "create newsletter_subscription comment")

    @pytest.mark.asyncio
    async def test_missing_group_is_rejected(self, db, og, club):
        membership = OgMembership(uid=club.member.id, group_type="node", group_id="01HMISSINGGROUP")

        with pytest.raises(InvalidMembership, match="does not exist"):
            await get_membership_roles(db, og, membership)


class TestCleanup:

    @pytest.mark.asyncio
    async def test_deleting_group_deletes_memberships(self, db, og, club):
        group_id = club.group.id

        await delete_entity(db, og, club.group)

        assert await get_memberships(db, group_id=group_id) == []

    @pytest.mark.asyncio
    async def test_delete_memberships_of_user(self, db, og, club):
        assert await delete_memberships(db, og, user_id=club.member.id) == 1

        assert await get_membership(db, club.member.id, "node", club.group.id) is None

    @pytest.mark.asyncio
    async def test_delete_memberships_requires_filter(self, db, og):
        with pytest.raises(ValueError):
            await delete_memberships(db, og)


class TestManagerMembership:

    @pytest.mark.asyncio
    async def test_owner_becomes_administrator(self, db, make_user):
        og = create_og_context(create_manager_membership=True)
        await declare_club(db, og)
        owner = await make_user("founder")

        group = await create_entity(db, og, "node", "club", label="Club", owner=owner)

        membership = await get_membership(db, owner.id, "node", group.id)
        assert membership.get_roles_ids() == ["node-club-administrator"]
        assert (await og.access.user_access_entity(db, "update", group, owner)).is_allowed()

    @pytest.mark.asyncio
    async def test_no_membership_for_content(self, db, make_user):
        og = create_og_context(create_manager_membership=True)
        await declare_club(db, og)
        owner = await make_user("founder")
        group = await create_entity(db, og, "node", "club", label="Club", owner=owner)
        writer = await make_user("writer")

        await create_entity(
            db, og, "node", "article", label="Post", owner=writer, references={"og_group_ref": [group.id]}
        )

        assert await get_memberships(db, user_id=writer.id) == []
        manager = await get_membership(db, owner.id, "node", group.id)
        assert [role.name for role in manager.get_roles()] == [ADMINISTRATOR]
