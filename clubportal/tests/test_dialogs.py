import asyncio
import unittest
from datetime import datetime, timezone

import httpx

from clubportal.app import create_app
from clubportal.client import NETWORK_ERROR, PortalClient
from clubportal.dialogs import (
    INVALID_WEIGHT,
    UNEXPECTED_ERROR,
    UNEXPECTED_SEARCH_ERROR,
    AttachEventDialog,
    DialogState,
    UserSearchDialog,
)
from clubportal.schemas import ActionResult
from clubportal.types import Capability
from portal_testing_utils import TEST_PASSWORD, override_backends, seed_user

DEBOUNCE = 0.01

EVENTS = [
    {
        "id": 1,
        "title": "CSE Fest Contest",
        "description": "Annual programming contest",
        "starting_at": datetime(2025, 3, 1, tzinfo=timezone.utc).isoformat(),
        "type": "contest",
    },
    {
        "id": 2,
        "title": "Intro to Graphs",
        "description": None,
        "starting_at": datetime(2025, 3, 8, tzinfo=timezone.utc).isoformat(),
        "type": "class",
    },
    {
        "id": 3,
        "title": "Alumni Meetup",
        "description": "Networking evening",
        "starting_at": datetime(2025, 3, 15, tzinfo=timezone.utc).isoformat(),
        "type": "other",
    },
]


def user(user_id: int, name: str) -> dict:
    return {
        "id": user_id,
        "name": name,
        "email": f"{name.lower()}@s.diu.edu.bd",
        "student_id": None,
        "image": None,
    }


class FakeRanklistBackend:
    """Records calls and answers like the ranklist routes would."""

    def __init__(self):
        self.attached: dict[int, float] = {}
        self.members: set[int] = set()
        self.users = [user(10, "Rafi"), user(11, "Rahim")]
        self.event_calls = 0
        self.search_calls: list[str] = []
        self.attach_calls: list[tuple[int, float]] = []
        self.add_calls: list[int] = []

    async def get_available_events(self) -> ActionResult:
        self.event_calls += 1
        return ActionResult(
            success=True, data=[e for e in EVENTS if e["id"] not in self.attached]
        )

    async def attach_event(self, event_id: int, weight: float) -> ActionResult:
        self.attach_calls.append((event_id, weight))
        self.attached[event_id] = weight
        return ActionResult(
            success=True,
            data={"ranklist_id": 1, "event_id": event_id, "weight": weight},
            message="Event attached successfully",
        )

    async def search_users(self, query: str) -> ActionResult:
        self.search_calls.append(query)
        needle = query.lower()
        return ActionResult(
            success=True,
            data=[
                u
                for u in self.users
                if u["id"] not in self.members and needle in u["name"].lower()
            ],
        )

    async def add_user(self, user_id: int) -> ActionResult:
        self.add_calls.append(user_id)
        self.members.add(user_id)
        return ActionResult(success=True, data=user(user_id, "Added"))


class DialogTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.backend = FakeRanklistBackend()
        self.notices: list[tuple[str, str]] = []
        self.added: list = []

    def notify(self, level: str, message: str) -> None:
        self.notices.append((level, message))

    def user_dialog(self, **overrides) -> UserSearchDialog:
        kwargs = {
            "search_users": self.backend.search_users,
            "add_user": self.backend.add_user,
            "on_added": self.added.append,
            "notify": self.notify,
            "debounce_seconds": DEBOUNCE,
        }
        kwargs.update(overrides)
        dialog = UserSearchDialog(**kwargs)
        dialog.open()
        return dialog

    def event_dialog(self) -> AttachEventDialog:
        dialog = AttachEventDialog(
            self.backend.get_available_events,
            self.backend.attach_event,
            on_added=self.added.append,
            notify=self.notify,
            debounce_seconds=DEBOUNCE,
        )
        dialog.open()
        return dialog


class UserSearchDialogTests(DialogTestCase):
    async def test_short_input_never_searches(self):
        dialog = self.user_dialog()
        dialog.input_changed("r")
        await dialog.settle()
        self.assertEqual(self.backend.search_calls, [])
        self.assertEqual(dialog.state, DialogState.IDLE)
        self.assertEqual(dialog.results, [])

    async def test_typing_burst_runs_one_search(self):
        dialog = self.user_dialog()
        for text in ("ra", "raf", "rafi"):
            dialog.input_changed(text)
        await dialog.settle()
        self.assertEqual(self.backend.search_calls, ["rafi"])
        self.assertEqual(dialog.state, DialogState.RESULTS)
        self.assertEqual([u.id for u in dialog.results], [10])

    async def test_clearing_input_discards_pending_search(self):
        dialog = self.user_dialog()
        dialog.input_changed("ra")
        dialog.input_changed("")
        await dialog.settle()
        self.assertEqual(self.backend.search_calls, [])
        self.assertEqual(dialog.state, DialogState.IDLE)

    async def test_no_matches_is_empty(self):
        dialog = self.user_dialog()
        await dialog.search("zz")
        self.assertEqual(dialog.state, DialogState.EMPTY)
        self.assertEqual(self.notices, [])

    async def test_stale_response_is_discarded(self):
        gate = asyncio.Event()
        backend = self.backend

        async def slow_first(query: str) -> ActionResult:
            if query == "ra":
                await gate.wait()
                return ActionResult(success=True, data=[user(99, "Stale")])
            return await backend.search_users(query)

        dialog = self.user_dialog(search_users=slow_first)
        first = asyncio.create_task(dialog.search("ra"))
        await asyncio.sleep(0)
        await dialog.search("rahim")
        gate.set()
        await first

        self.assertEqual([u.id for u in dialog.results], [11])
        self.assertEqual(dialog.state, DialogState.RESULTS)

    async def test_failed_search_notifies_and_empties(self):
        async def denied(query: str) -> ActionResult:
            return ActionResult(success=False, error="You don't have permission to perform this action")

        dialog = self.user_dialog(search_users=denied)
        await dialog.search("rafi")
        self.assertEqual(
            self.notices, [("error", "You don't have permission to perform this action")]
        )
        self.assertEqual(dialog.state, DialogState.EMPTY)
        self.assertEqual(dialog.results, [])

    async def test_search_exception_is_reported(self):
        async def broken(query: str) -> ActionResult:
            raise RuntimeError("boom")

        dialog = self.user_dialog(search_users=broken)
        with self.assertLogs("clubportal.dialogs", level="ERROR"):
            await dialog.search("rafi")
        self.assertEqual(self.notices, [("error", UNEXPECTED_SEARCH_ERROR)])
        self.assertEqual(dialog.state, DialogState.EMPTY)

    async def test_add_keeps_other_results(self):
        dialog = self.user_dialog()
        await dialog.search("ra")
        self.assertEqual(len(dialog.results), 2)

        self.assertTrue(await dialog.add(10))
        self.assertEqual([u.id for u in dialog.results], [11])
        self.assertEqual(dialog.state, DialogState.RESULTS)
        self.assertEqual(self.backend.search_calls, ["ra"])
        self.assertEqual(self.notices, [("success", "User added successfully")])
        self.assertEqual(len(self.added), 1)
        self.assertIsNone(dialog.adding)

    async def test_add_failure_keeps_item(self):
        async def rejected(user_id: int) -> ActionResult:
            return ActionResult(success=False, error="User is already a member of this ranklist")

        dialog = self.user_dialog(add_user=rejected)
        await dialog.search("rafi")
        self.assertFalse(await dialog.add(10))
        self.assertEqual([u.id for u in dialog.results], [10])
        self.assertEqual(
            self.notices, [("error", "User is already a member of this ranklist")]
        )
        self.assertEqual(self.added, [])

    async def test_add_exception_is_reported(self):
        async def broken(user_id: int) -> ActionResult:
            raise RuntimeError("boom")

        dialog = self.user_dialog(add_user=broken)
        await dialog.search("rafi")
        with self.assertLogs("clubportal.dialogs", level="ERROR"):
            self.assertFalse(await dialog.add(10))
        self.assertEqual(self.notices, [("error", UNEXPECTED_ERROR)])
        self.assertIsNone(dialog.adding)


class AttachEventDialogTests(DialogTestCase):
    async def test_attach_sole_match_with_default_weight(self):
        dialog = self.event_dialog()
        dialog.input_changed("cs")
        await dialog.settle()
        self.assertEqual([e.id for e in dialog.results], [1])
        self.assertEqual(dialog.weight_for(1), "1.0")

        self.assertTrue(await dialog.add(1))

        self.assertEqual(self.backend.attach_calls, [(1, 1.0)])
        self.assertEqual(self.notices, [("success", "Event attached successfully")])
        # Last result gone, so the list was refreshed.
        self.assertEqual(self.backend.event_calls, 2)
        self.assertEqual(dialog.results, [])
        self.assertEqual(dialog.state, DialogState.EMPTY)
        self.assertEqual(self.added, [{"ranklist_id": 1, "event_id": 1, "weight": 1.0}])

    async def test_filter_matches_description_and_type(self):
        dialog = self.event_dialog()
        await dialog.search("networking")
        self.assertEqual([e.id for e in dialog.results], [3])
        await dialog.search("CLASS")
        self.assertEqual([e.id for e in dialog.results], [2])

    async def test_custom_weight_is_sent(self):
        dialog = self.event_dialog()
        await dialog.search("graphs")
        dialog.set_weight(2, "0.25")
        self.assertTrue(await dialog.add(2))
        self.assertEqual(self.backend.attach_calls, [(2, 0.25)])
        self.assertNotIn(2, dialog.weights)

    async def test_invalid_weight_never_calls_server(self):
        dialog = self.event_dialog()
        await dialog.search("graphs")
        for bad in ("1.5", "-0.1", "abc", "nan"):
            dialog.set_weight(2, bad)
            self.assertFalse(await dialog.add(2))
        self.assertEqual(self.backend.attach_calls, [])
        self.assertEqual(self.notices, [("error", INVALID_WEIGHT)] * 4)
        self.assertEqual([e.id for e in dialog.results], [2])

    async def test_unreadable_events_are_reported(self):
        async def malformed() -> ActionResult:
            return ActionResult(success=True, data=[{"id": "x"}])

        dialog = AttachEventDialog(
            malformed,
            self.backend.attach_event,
            notify=self.notify,
            debounce_seconds=DEBOUNCE,
        )
        dialog.open()
        with self.assertLogs("clubportal.dialogs", level="ERROR"):
            dialog.input_changed("cs")
            await dialog.settle()
        self.assertEqual(dialog.state, DialogState.EMPTY)
        self.assertEqual(dialog.results, [])
        self.assertEqual(self.notices, [("error", UNEXPECTED_SEARCH_ERROR)])

    async def test_open_resets_state(self):
        dialog = self.event_dialog()
        await dialog.search("graphs")
        dialog.set_weight(2, "0.5")
        dialog.close()
        dialog.open()
        self.assertTrue(dialog.is_open)
        self.assertEqual(dialog.query, "")
        self.assertEqual(dialog.results, [])
        self.assertEqual(dialog.weights, {})
        self.assertEqual(dialog.state, DialogState.IDLE)


class PortalClientTests(unittest.IsolatedAsyncioTestCase):
    async def test_transport_failure_becomes_envelope(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with PortalClient("http://portal.test", transport=httpx.MockTransport(refuse)) as client:
            with self.assertLogs("clubportal.client", level="WARNING"):
                result = await client.logout()
        self.assertFalse(result.success)
        self.assertEqual(result.error, NETWORK_ERROR)

    async def test_server_error_becomes_envelope(self):
        def explode(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="Internal Server Error")

        async with PortalClient("http://portal.test", transport=httpx.MockTransport(explode)) as client:
            with self.assertLogs("clubportal.client", level="WARNING"):
                result = await client.get_available_events(1)
        self.assertEqual(result.error, NETWORK_ERROR)

    async def test_user_dialog_against_app(self):
        app = create_app()
        db, _, _ = override_backends(app)
        seed_user(
            db,
            "admin@diu.edu.bd",
            "Admin",
            permissions=[Capability.MANAGE_TRACKERS.value],
        )
        rafi = seed_user(db, "rafi@s.diu.edu.bd", "Rafi", student_id="221-15-0042")
        ranklist = db.insert_ranklist(keyword="weekly")
        notices: list[tuple[str, str]] = []

        transport = httpx.ASGITransport(app=app)
        async with PortalClient("http://testserver", transport=transport) as client:
            login = await client.login("admin@diu.edu.bd", TEST_PASSWORD)
            self.assertTrue(login.success)

            dialog = UserSearchDialog(
                lambda query: client.search_users(ranklist.id, query),
                lambda user_id: client.add_user(ranklist.id, user_id),
                notify=lambda level, message: notices.append((level, message)),
                debounce_seconds=DEBOUNCE,
            )
            dialog.open()
            dialog.input_changed("rafi")
            await dialog.settle()
            self.assertEqual([u.id for u in dialog.results], [rafi.id])

            self.assertTrue(await dialog.add(rafi.id))

        self.assertTrue(db.is_ranklist_member(ranklist.id, rafi.id))
        self.assertEqual(notices, [("success", "User added successfully")])
        self.assertEqual(dialog.state, DialogState.EMPTY)


if __name__ == "__main__":
    unittest.main()
