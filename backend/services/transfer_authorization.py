"""
Who may resolve a transfer.

Employee requests need branch- or manager-level sign-off, branch requests need
a manager, and manager requests approve themselves at creation time, so they
have no entry here. Anything not in the table is denied.
"""

from core.actors import Actor, ActorKind
from db.inventory.transfer import InventoryTransfer

APPROVER_KINDS: dict[ActorKind, frozenset[ActorKind]] = {
    ActorKind.EMPLOYEE_LOGIN: frozenset({ActorKind.BRANCH, ActorKind.BRANCH_MANAGER}),
    ActorKind.BRANCH: frozenset({ActorKind.BRANCH_MANAGER}),
}


def can_approve(transfer: InventoryTransfer, actor: Actor) -> bool:
    requester = ActorKind.parse(transfer.requested_by_type)
    if requester is None or actor is None:
        return False
    return actor.kind in APPROVER_KINDS.get(requester, frozenset())


def can_view(transfer: InventoryTransfer, actor: Actor) -> bool:
    if actor is None:
        return False
    return transfer.from_branch_id in actor.branch_ids or transfer.to_branch_id in actor.branch_ids
