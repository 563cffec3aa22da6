import uuid
from decimal import Decimal

import pytest
from fastapi import HTTPException

from conftest import ALL_PERMISSIONS, make_user
from core.actors import APPROVE_TRANSFER, READ_TRANSFERS, Actor, ActorKind, resolve_actor
from services.inventory_transfers import create_transfer


async def test_manager_sees_every_branch_they_manage(db, session_maker, world):
    user = await make_user(
        session_maker, "manager@example.com",
        actor_kind="branch_manager", branch_manager_id=world.manager_id, permissions=[READ_TRANSFERS],
    )

    actor = await resolve_actor(db, user)

    assert actor.kind is ActorKind.BRANCH_MANAGER
    assert actor.id == world.manager_id
    assert actor.branch_ids == {world.branch_a_id, world.branch_b_id}
    assert actor.permissions == {READ_TRANSFERS}
    assert actor.home_branch_id is None


async def test_employee_acts_from_their_branch(db, session_maker, world):
    user = await make_user(session_maker, "karim@example.com", actor_kind="employee_login", employee_id=world.employee_b_id)

    actor = await resolve_actor(db, user)

    assert actor.kind is ActorKind.EMPLOYEE_LOGIN
    assert actor.id == world.employee_b_id
    assert actor.branch_ids == {world.branch_b_id}
    assert actor.home_branch_id == world.branch_b_id
    assert actor.permissions == frozenset()


async def test_branch_account_acts_as_its_branch(db, session_maker, world):
    user = await make_user(session_maker, "smouha@example.com", actor_kind="branch", branch_id=world.branch_c_id)

    actor = await resolve_actor(db, user)

    assert actor.kind is ActorKind.BRANCH
    assert actor.id == world.branch_c_id
    assert actor.home_branch_id == world.branch_c_id


@pytest.mark.parametrize(
    "actor_kind, links",
    [
        (None, {}),
        ("admin", {}),
        ("branch_manager", {}),
        ("employee_login", {"employee_id": 9999}),
    ],
)
async def test_user_without_a_valid_actor_link_is_refused(db, session_maker, world, actor_kind, links):
    user = await make_user(session_maker, "nobody@example.com", actor_kind=actor_kind, permissions=ALL_PERMISSIONS, **links)

    with pytest.raises(HTTPException) as exc:
        await resolve_actor(db, user)
    assert exc.value.status_code == 403


async def test_permission_gate_uses_the_user_permission_rows(user_client, acting, session_maker, world):
    acting["user"] = await make_user(
        session_maker, "downtown@example.com", actor_kind="branch", branch_id=world.branch_a_id, permissions=[READ_TRANSFERS],
    )

    res = await user_client.get("/inventory-transfers/")
    assert res.status_code == 200
    assert res.json()["total"] == 0

    res = await user_client.post(
        "/inventory-transfers/",
        json={"inventory_id": world.line_a_id, "to_branch_id": world.branch_b_id, "quantity": 1},
    )
    assert res.status_code == 403


async def test_user_without_actor_is_403_over_http(user_client, acting, session_maker, world):
    acting["user"] = await make_user(session_maker, "admin@example.com", actor_kind=None, permissions=ALL_PERMISSIONS)

    assert (await user_client.get("/inventory-transfers/")).status_code == 403


async def test_manager_user_approves_through_resolved_actor(user_client, acting, db, session_maker, world):
    transfer = await create_transfer(
        db,
        requester=world.employee_a,
        inventory_id=world.line_a_id,
        from_branch_id=world.branch_a_id,
        to_branch_id=world.branch_b_id,
        quantity=Decimal("2"),
    )

    acting["user"] = await make_user(
        session_maker, "approver@example.com",
        actor_kind="branch_manager", branch_manager_id=world.manager_id, permissions=[APPROVE_TRANSFER],
    )
    res = await user_client.post(f"/inventory-transfers/{transfer.uuid}/approve")

    assert res.status_code == 200
    assert res.json()["status"] == "تم القبول"
    assert res.json()["quantity"] == 2.0


async def test_actor_without_any_permission_is_403(client, acting, world):
    acting["actor"] = Actor(ActorKind.BRANCH_MANAGER, world.manager_id, frozenset({world.branch_a_id, world.branch_b_id}))

    assert (await client.get("/inventory-transfers/")).status_code == 403
    assert (await client.get("/inventory-transfers/branches")).status_code == 403
    assert (await client.post(f"/inventory-transfers/{uuid.uuid4()}/approve")).status_code == 403
