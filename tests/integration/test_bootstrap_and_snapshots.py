"""
Bootstrap choices, configured id starts, and snapshot/restore.
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from adapters.in_memory import build_system, restore_system
from core.commands import NotFound, Unauthorized
from core.config import IdtixSettings
from core.time.clock import FixedClock
from engines.roles.models import Role

ADMIN = "did:root"
T0 = datetime(2026, 10, 1, tzinfo=timezone.utc)
FUTURE = T0 + timedelta(days=5)


# ── Bootstrap ────────────────────────────────────────────────

class TestBootstrap:
    def test_with_identifier_registers_admin(self):
        system = build_system(
            IdtixSettings(bootstrap_admin=ADMIN, bootstrap_admin_identifier="root@idtix"),
            clock=FixedClock(T0),
        )
        assert system.lookup(ADMIN) == "root@idtix"
        assert system.current_role(ADMIN) is Role.SUPER_ADMIN
        assert [n.event_type for n in system.notifications()] == [
            "identity.identity.created.v1",
            "roles.role.assigned.v1",
        ]

    def test_without_identifier_admin_must_register(self, caplog):
        with caplog.at_level("WARNING", logger="idtix.bootstrap"):
            system = build_system(IdtixSettings(bootstrap_admin=ADMIN), clock=FixedClock(T0))
        assert "must register" in caplog.text

        assert system.current_role(ADMIN) is Role.SUPER_ADMIN
        with pytest.raises(NotFound):
            system.assign_role(ADMIN, "did:bob", Role.USER)
        with pytest.raises(Unauthorized):
            system.issue(ADMIN, "did:bob", Role.USER)

        system.register(ADMIN, "root@idtix")
        assert system.assign_role(ADMIN, "did:bob", Role.USER).current is Role.USER

    def test_no_admin_configured(self):
        system = build_system(clock=FixedClock(T0))
        assert system.roles.bootstrapped_admin is None
        system.register("did:x", "x")
        with pytest.raises(Unauthorized):
            system.assign_role("did:x", "did:x", Role.SUPER_ADMIN)

    def test_configured_id_starts(self):
        system = build_system(
            IdtixSettings(
                bootstrap_admin=ADMIN,
                bootstrap_admin_identifier="root@idtix",
                event_id_start=100,
                ticket_id_start=5000,
            ),
            clock=FixedClock(T0),
        )
        system.register("did:org", "org")
        system.assign_role(ADMIN, "did:org", Role.ORGANIZER)
        event_id = system.create_event("did:org", "E", 2, 10, FUTURE)
        assert event_id == 100
        assert system.purchase("did:org", event_id, 10) == 5000


# ── Snapshots ────────────────────────────────────────────────

def _populated():
    system = build_system(
        IdtixSettings(bootstrap_admin=ADMIN, bootstrap_admin_identifier="root@idtix"),
        clock=FixedClock(T0),
    )
    system.register("did:org", "org")
    system.issue(ADMIN, "did:org", "Organizer")
    system.register("did:bob", "bob")
    system.set_metadata("did:bob", "Bob", "bob@example", "pic")
    event_id = system.create_event("did:org", "Gig", 3, 50, FUTURE)
    system.purchase("did:bob", event_id, 50)
    return system, event_id


class TestSnapshots:
    def test_snapshot_is_stored(self):
        system, _ = _populated()
        entry = system.snapshot("after-gig")
        assert system.snapshots.get_latest() is entry
        assert entry.notification_sequence == len(system.notifications())
        assert entry.data["counters"] == {
            "event_id": 2,
            "ticket_id": 2,
            "credential_sequence": 2,
        }

    def test_restore_reproduces_state(self):
        system, event_id = _populated()
        entry = system.snapshot()
        restored = restore_system(entry, clock=FixedClock(T0))

        assert restored.lookup("did:bob") == "bob"
        assert restored.get_metadata("did:bob").name == "Bob"
        assert restored.current_role("did:org") is Role.ORGANIZER
        assert restored.credentials_of("did:org") == system.credentials_of("did:org")
        assert restored.event_details(event_id) == system.event_details(event_id)
        assert restored.tickets_of("did:bob") == (1,)
        assert restored.tickets.payment_gateway.balance_of("did:org") == 50
        assert restored.roles.bootstrapped_admin == ADMIN

    def test_restored_system_continues_counters(self):
        system, event_id = _populated()
        restored = system.restore(system.snapshot())

        assert restored.purchase("did:bob", event_id, 50) == 2
        assert restored.create_event("did:org", "Next", 1, 1, FUTURE) == 2
        last = restored.notifications()[-1]
        assert last.sequence == system.publisher.last_sequence + 2

    def test_snapshot_is_isolated_from_later_changes(self):
        system, event_id = _populated()
        entry = system.snapshot()
        system.purchase("did:bob", event_id, 50)

        restored = restore_system(entry)
        assert restored.event_details(event_id).available_tickets == 2
        assert system.event_details(event_id).available_tickets == 1

    def test_unknown_schema_version(self):
        system, _ = _populated()
        entry = system.snapshot()
        bad = type(entry)(
            snapshot_id=entry.snapshot_id,
            label=entry.label,
            created_at=entry.created_at,
            schema_version=99,
            data=entry.data,
        )
        with pytest.raises(ValueError, match="schema_version"):
            restore_system(bad)


# ── Snapshot consistency under concurrent writes ─────────────

def _run_during_export(monkeypatch, store, operation):
    """
    Start `operation` on another thread while `store` is being exported
    and report whether it was still waiting when the export finished.
    """
    original = store.export_state
    seen = {}

    def _export():
        state = original()
        worker = threading.Thread(target=operation)
        worker.start()
        worker.join(timeout=0.3)
        seen["blocked"] = worker.is_alive()
        seen["worker"] = worker
        return state

    monkeypatch.setattr(store, "export_state", _export)
    return seen


class TestSnapshotConsistency:
    def test_issue_waits_for_snapshot(self, monkeypatch):
        system, _ = _populated()
        seen = _run_during_export(
            monkeypatch,
            system.roles.store,
            lambda: system.issue(ADMIN, "did:newcomer", "Organizer"),
        )

        entry = system.snapshot("mid-issue")
        seen["worker"].join(timeout=5)

        assert seen["blocked"]
        assert "did:newcomer" not in entry.data["roles"]
        assert all(row["holder"] != "did:newcomer" for row in entry.data["credentials"])
        assert system.current_role("did:newcomer") is Role.ORGANIZER
        assert len(system.credentials_of("did:newcomer")) == 1

    def test_create_event_waits_for_snapshot(self, monkeypatch):
        system, event_id = _populated()
        seen = _run_during_export(
            monkeypatch,
            system.catalog.store,
            lambda: system.create_event("did:org", "Encore", 2, 50, FUTURE),
        )

        entry = system.snapshot("mid-create")
        seen["worker"].join(timeout=5)

        assert seen["blocked"]
        assert [row["event_id"] for row in entry.data["events"]] == [event_id]
        assert entry.data["counters"]["event_id"] == event_id + 1

        restored = system.restore(entry)
        assert restored.create_event("did:org", "Encore", 2, 50, FUTURE) == event_id + 1
        assert system.catalog.events_by("did:org") == (event_id, event_id + 1)
