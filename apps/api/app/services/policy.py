"""
Capability matrix: (role, resource kind, action) -> allow/deny.

Pure and total. Anything not listed below is denied, including unknown roles,
kinds or actions passed as strings.
"""

from __future__ import annotations

from enum import Enum

from app.models.entities import RoleEnum


class ResourceKind(str, Enum):
    family = "family"
    event = "event"
    medication_log = "medicationLog"
    document = "document"
    message = "message"
    time_entry = "timeEntry"
    pay_rate = "payRate"


class Action(str, Enum):
    read = "read"
    create = "create"
    update = "update"
    delete = "delete"
    manage_members = "manageMembers"
    # Marking an event done; narrower than update.
    complete = "complete"


class Decision(str, Enum):
    allow = "allow"
    deny = "deny"


_CRUD = frozenset({Action.read, Action.create, Action.update, Action.delete})
_CONTENT_KINDS = (
    ResourceKind.event,
    ResourceKind.medication_log,
    ResourceKind.document,
    ResourceKind.message,
    ResourceKind.time_entry,
    ResourceKind.pay_rate,
)

CAPABILITIES: dict[RoleEnum, dict[ResourceKind, frozenset[Action]]] = {
    RoleEnum.owner: {
        ResourceKind.family: frozenset({Action.read, Action.update, Action.delete, Action.manage_members}),
        **{kind: _CRUD for kind in _CONTENT_KINDS},
        ResourceKind.event: _CRUD | {Action.complete},
    },
    RoleEnum.member: {
        # manageMembers covers issuing/forwarding/revoking invites; there is no
        # operation that removes another member.
        ResourceKind.family: frozenset({Action.read, Action.manage_members}),
        **{kind: _CRUD for kind in _CONTENT_KINDS},
        ResourceKind.event: _CRUD | {Action.complete},
    },
    RoleEnum.caregiver: {
        ResourceKind.family: frozenset({Action.read}),
        ResourceKind.event: frozenset({Action.read, Action.complete}),
        ResourceKind.medication_log: frozenset({Action.read, Action.create}),
        ResourceKind.document: frozenset({Action.read}),
        ResourceKind.message: frozenset({Action.read, Action.create}),
        ResourceKind.time_entry: frozenset({Action.read, Action.create}),
        ResourceKind.pay_rate: frozenset({Action.read}),
    },
}


def _coerce(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except (TypeError, ValueError):
        return None


def decide(role: RoleEnum | str, kind: ResourceKind | str, action: Action | str) -> Decision:
    role_ = _coerce(RoleEnum, role)
    kind_ = _coerce(ResourceKind, kind)
    action_ = _coerce(Action, action)
    if role_ is None or kind_ is None or action_ is None:
        return Decision.deny
    allowed = CAPABILITIES.get(role_, {}).get(kind_, frozenset())
    return Decision.allow if action_ in allowed else Decision.deny


def is_allowed(role: RoleEnum | str, kind: ResourceKind | str, action: Action | str) -> bool:
    return decide(role, kind, action) is Decision.allow


def allowed_actions(role: RoleEnum | str, kind: ResourceKind | str) -> list[str]:
    return [action.value for action in Action if is_allowed(role, kind, action)]


def capabilities(role: RoleEnum | str) -> dict[str, list[str]]:
    return {kind.value: allowed_actions(role, kind) for kind in ResourceKind}
