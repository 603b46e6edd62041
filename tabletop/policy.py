"""Role & admission policy.

``AdmissionPolicy.decide`` is a pure function of a room snapshot and the
identity asking to join: it never mutates anything and never performs I/O.
Each rule is a small predicate returning a rejection reason or ``None``; the
set and order of rules is built from ``Settings`` so deployments can relax or
tighten admission without touching the store.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

from .config import Settings
from .constants import Role
from .errors import AdmissionReason
from .schemas import Identity, RoomSnapshot


@dataclass(frozen=True)
class Decision:
    accepted: bool
    reason: Optional[AdmissionReason] = None
    # Stale connections that must be evicted before the join is applied.
    evict: Tuple[str, ...] = ()

    @classmethod
    def accept(cls, evict: Tuple[str, ...] = ()) -> "Decision":
        return cls(accepted=True, evict=tuple(evict))

    @classmethod
    def reject(cls, reason: AdmissionReason) -> "Decision":
        return cls(accepted=False, reason=reason)


Rule = Callable[["AdmissionPolicy", RoomSnapshot, Identity, Tuple[str, ...]], Optional[AdmissionReason]]


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def missing_fields(policy: AdmissionPolicy, snapshot: RoomSnapshot, identity: Identity,
                   evict: Tuple[str, ...]) -> Optional[AdmissionReason]:
    if not snapshot.room.strip() or not identity.connection_id or not identity.display_name.strip():
        return AdmissionReason.MISSING_FIELDS
    return None


def reserved_host_name(policy: AdmissionPolicy, snapshot: RoomSnapshot, identity: Identity,
                       evict: Tuple[str, ...]) -> Optional[AdmissionReason]:
    if policy.claims_host_seat(identity) and not identity.same_name(policy.reserved_host_name):
        return AdmissionReason.NOT_AUTHORIZED_FOR_HOST
    return None


def privileged_seat_free(policy: AdmissionPolicy, snapshot: RoomSnapshot, identity: Identity,
                         evict: Tuple[str, ...]) -> Optional[AdmissionReason]:
    def _held_by_other(occupant: Optional[Identity]) -> bool:
        return (
            occupant is not None
            and occupant.connection_id != identity.connection_id
            and occupant.connection_id not in evict
        )

    if policy.claims_host_seat(identity) and _held_by_other(snapshot.host):
        return AdmissionReason.HOST_SLOT_TAKEN
    if identity.role is Role.CREATOR and _held_by_other(snapshot.creator):
        return AdmissionReason.HOST_SLOT_TAKEN
    return None


def host_required_first(policy: AdmissionPolicy, snapshot: RoomSnapshot, identity: Identity,
                        evict: Tuple[str, ...]) -> Optional[AdmissionReason]:
    if identity.role is not Role.PLAYER:
        return None
    present = [snapshot.host]
    if policy.creator_satisfies_host_requirement:
        present.append(snapshot.creator)
    if any(seat is not None and seat.connection_id != identity.connection_id for seat in present):
        return None
    return AdmissionReason.HOST_REQUIRED_FIRST


def room_capacity(policy: AdmissionPolicy, snapshot: RoomSnapshot, identity: Identity,
                  evict: Tuple[str, ...]) -> Optional[AdmissionReason]:
    if identity.role is not Role.PLAYER:
        return None
    others = [p for p in snapshot.players if p.connection_id != identity.connection_id]
    if len(others) >= policy.max_players:
        return AdmissionReason.ROOM_FULL
    return None


def unique_name(policy: AdmissionPolicy, snapshot: RoomSnapshot, identity: Identity,
                evict: Tuple[str, ...]) -> Optional[AdmissionReason]:
    for member in snapshot.members():
        if member.connection_id == identity.connection_id or member.connection_id in evict:
            continue
        if member.same_name(identity.display_name):
            return AdmissionReason.NAME_TAKEN
    return None


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------

@dataclass
class AdmissionPolicy:
    max_players: int = 10
    reserved_host_name: str = ""
    host_required_first: bool = True
    creator_satisfies_host_requirement: bool = True
    reconnect_replaces_host: bool = True
    creator_is_host: bool = False
    rules: Tuple[Rule, ...] = field(default=())

    def __post_init__(self) -> None:
        if not self.rules:
            self.rules = self.default_rules()

    @classmethod
    def from_settings(cls, settings: Settings) -> "AdmissionPolicy":
        return cls(
            max_players=settings.max_players,
            reserved_host_name=settings.reserved_host_name.strip(),
            host_required_first=settings.host_required_first,
            creator_satisfies_host_requirement=settings.creator_satisfies_host_requirement,
            reconnect_replaces_host=settings.reconnect_replaces_host,
            creator_is_host=settings.creator_is_host,
        )

    def default_rules(self) -> Tuple[Rule, ...]:
        rules = [missing_fields]
        if self.reserved_host_name:
            rules.append(reserved_host_name)
        rules.append(privileged_seat_free)
        if self.host_required_first:
            rules.append(host_required_first)
        rules.extend([room_capacity, unique_name])
        return tuple(rules)

    def claims_host_seat(self, identity: Identity) -> bool:
        return identity.role is Role.HOST or (identity.role is Role.CREATOR and self.creator_is_host)

    def stale_seat_holders(self, snapshot: RoomSnapshot, identity: Identity) -> Tuple[str, ...]:
        """Connections a reconnecting host replaces: same name, different connection."""
        if not self.reconnect_replaces_host or not self.claims_host_seat(identity):
            return ()
        host = snapshot.host
        if host is None or host.connection_id == identity.connection_id:
            return ()
        if not host.same_name(identity.display_name):
            return ()
        return (host.connection_id,)

    def decide(self, snapshot: RoomSnapshot, identity: Identity) -> Decision:
        evict = self.stale_seat_holders(snapshot, identity)
        for rule in self.rules:
            reason = rule(self, snapshot, identity, evict)
            if reason is not None:
                return Decision.reject(reason)
        return Decision.accept(evict)


__all__ = [
    "Decision",
    "Rule",
    "AdmissionPolicy",
    "missing_fields",
    "reserved_host_name",
    "privileged_seat_free",
    "host_required_first",
    "room_capacity",
    "unique_name",
]
