"""Tests for OgRole and role administration."""

import pytest
from sqlalchemy import select

from organic_groups.core.exceptions import ConfigurationError, RoleLocked, UnknownPermission
from organic_groups.features.groups.service import remove_group
from organic_groups.features.memberships.models import og_membership_roles
from organic_groups.features.memberships.service import get_membership
from organic_groups.features.permissions.catalog import ADMINISTRATOR, ANONYMOUS, AUTHENTICATED
from organic_groups.features.permissions.models import OgRole, RoleType, make_role_id
from organic_groups.features.permissions.service import (
    available_permissions,
    create_role,
    delete_role,
    ensure_default_roles,
    get_role,
    get_roles_for_bundle,
    grant_permissions,
)

from conftest import declare_club


def _role(**kwargs) -> OgRole:
    defaults = dict(
        id="node-club-editor",
        name="editor",
        label="Editor",
        group_type="node",
        group_bundle="club",
        role_type=RoleType.STANDARD,
        permissions=[],
    )
    defaults.update(kwargs)
    return OgRole(**defaults)


# =============================================================================
# MODEL
# =============================================================================


class TestOgRole:

    def test_grant_is_idempotent(self):
        role = _role()
        role.grant_permission("edit any article content")
        role.grant_permission("edit any article content")

        assert role.get_permissions() == ["edit any article content"]

    def test_revoke_missing_is_noop(self):
        role = _role(permissions=["subscribe"])
        role.revoke_permission("unsubscribe")

        assert role.get_permissions() == ["subscribe"]

    def test_grant_keeps_order(self):
        role = _role()
        for permission in ("b", "a", "c"):
            role.grant_permission(permission)

        assert role.get_permissions() == ["b", "a", "c"]

    def test_change_permissions(self):
        role = _role(permissions=["subscribe"])
        role.change_permissions({"subscribe": False, "unsubscribe": True})

        assert role.get_permissions() == ["unsubscribe"]
        assert role.has_permission("unsubscribe")
        assert not role.has_permission("subscribe")

    def test_has_permission_is_exact(self):
        role = _role(permissions=["edit any article content"])

        assert not role.has_permission("edit own article content")

    def test_locked_roles(self):
        assert _role().is_locked is False
        assert _role(role_type=RoleType.ADMINISTRATOR).is_locked is True

    def test_role_id(self):
        assert make_role_id("node", "club", "non-member") == "node-club-non-member"


# =============================================================================
# SERVICE
# =============================================================================


class TestDefaultRoles:

    @pytest.mark.asyncio
    async def test_declaring_group_provisions_roles(self, db, og):
        await declare_club(db, og)

        roles = await get_roles_for_bundle(db, "node", "club")

        assert [role.id for role in roles] == [
            "node-club-non-member",
            "node-club-member",
            "node-club-administrator",
        ]
        assert [role.role_type for role in roles] == [
            RoleType.ANONYMOUS,
            RoleType.AUTHENTICATED,
            RoleType.ADMINISTRATOR,
        ]
        assert roles[2].is_admin is True

    @pytest.mark.asyncio
    async def test_default_grants(self, db, og):
        roles = await declare_club(db, og)

        assert roles[ANONYMOUS].get_permissions() == ["subscribe"]
        assert roles[AUTHENTICATED].get_permissions() == ["unsubscribe"]
        assert "manage members" in roles[ADMINISTRATOR].get_permissions()
        assert "administer group" not in roles[ADMINISTRATOR].get_permissions()

    @pytest.mark.asyncio
    async def test_provisioning_is_idempotent(self, db, og):
        first = await declare_club(db, og)
        await grant_permissions(db, og, first[AUTHENTICATED], ["create article content"])

        second = await ensure_default_roles(db, og.catalog, og.cache, "node", "club")

        assert second[AUTHENTICATED].get_permissions() == ["unsubscribe", "create article content"]
        assert len(await get_roles_for_bundle(db, "node", "club")) == 3


class TestRoleAdministration:

    @pytest.mark.asyncio
    async def test_available_permissions(self, db, og):
        await declare_club(db, og)

        names = {p.name for p in available_permissions(og, "node", "club")}

        assert "subscribe" in names
        assert "edit any article content" in names
        assert "update own newsletter_subscription comment" in names

    @pytest.mark.asyncio
    async def test_grant_unknown_permission(self, db, og):
        roles = await declare_club(db, og)

        with pytest.raises(UnknownPermission):
            await grant_permissions(db, og, roles[AUTHENTICATED], ["edit own page content"])

    @pytest.mark.asyncio
    async def test_grant_twice(self, db, og):
        roles = await declare_club(db, og)
        await grant_permissions(db, og, roles[ADMINISTRATOR], ["edit any article content"])
        once = roles[ADMINISTRATOR].get_permissions()

        await grant_permissions(db, og, roles[ADMINISTRATOR], ["edit any article content"])

        assert roles[ADMINISTRATOR].get_permissions() == once

    @pytest.mark.asyncio
    async def test_create_role(self, db, og):
        await declare_club(db, og)

        role = await create_role(db, og, "node", "club", "editor", permissions=["edit any article content"])

        assert role.id == "node-club-editor"
        assert role.role_type == RoleType.STANDARD
        assert role.weight == 3
        assert (await get_role(db, "node-club-editor")).get_permissions() == ["edit any article content"]

    @pytest.mark.asyncio
    async def test_create_role_rejects_reserved_name_and_non_groups(self, db, og):
        await declare_club(db, og)

        with pytest.raises(ConfigurationError):
            await create_role(db, og, "node", "club", ADMINISTRATOR)
        with pytest.raises(ConfigurationError):
            await create_role(db, og, "node", "article", "editor")

    @pytest.mark.asyncio
    async def test_builtin_roles_are_locked(self, db, og):
        roles = await declare_club(db, og)

        with pytest.raises(RoleLocked):
            await delete_role(db, og, roles[ADMINISTRATOR])

    @pytest.mark.asyncio
    async def test_delete_role_revokes_from_memberships(self, db, og, club):
        editor = await create_role(db, og, "node", "club", "editor")
        membership = await get_membership(db, club.member.id, "node", club.group.id)
        membership.add_role(editor)
        await db.commit()

        await delete_role(db, og, editor)

        assert await get_role(db, "node-club-editor") is None
        assert membership.get_roles_ids() == []
        rows = await db.execute(select(og_membership_roles).where(og_membership_roles.c.role_id == "node-club-editor"))
        assert rows.all() == []

    @pytest.mark.asyncio
    async def test_removing_group_bundle_deletes_roles(self, db, og, club):
        assert await remove_group(db, og, "node", "club") is True

        assert await get_roles_for_bundle(db, "node", "club") == []
        assert og.registry.is_group("node", "club") is False
        membership = await get_membership(db, club.group_admin.id, "node", club.group.id)
        assert membership.get_roles() == []
