from __future__ import annotations

import asyncio
import unittest

from fake_backend import FakeBackend, make_client

from pipeline_board.core.roles import Role
from pipeline_board.core.stage_machine import ALL_DEPARTMENTS, Department
from pipeline_board.core.transition_rules import (
    ActionValidationError,
    PermissionDeniedError,
    TransitionValidationError,
)
from pipeline_board.core.uploads import Attachment, AttachmentKind
from pipeline_board.schemas.user import UserContext
from pipeline_board.services.backend_client import BackendError
from pipeline_board.services.board import (
    BoardRegistry,
    BoardStatus,
    ClientNotFoundError,
    MutationResult,
    PipelineBoard,
)

RESUME = Attachment("resume.pdf", b"%PDF", "application/pdf")
OFFER = Attachment("offer.pdf", b"%PDF", "application/pdf")


def _clients() -> list[dict]:
    return [
        make_client(1, "Sales"),
        make_client(2, "Sales"),
        make_client(3, "Resume", ["Acknowledged-Resume_Writer-Resume"]),
        make_client(4, "Marketing", ["Acknowledged-Marketing_Manager-Marketing", "AssignSeniorRecruiter-7"]),
        make_client(5, "Marketing", ["Acknowledged-Recruiter-Marketing"], days_ago=200),
    ]


async def _board(role: Role, user_id: int = 9) -> tuple[PipelineBoard, FakeBackend]:
    backend = FakeBackend(_clients())
    board = PipelineBoard(backend, UserContext(user_id=user_id, role=role))
    await board.load()
    return board, backend


class BoardMutationGuardTests(unittest.IsolatedAsyncioTestCase):
    async def test_second_mutation_is_ignored_while_first_is_in_flight(self) -> None:
        board, backend = await _board(Role.SALES_EXECUTIVE)
        backend.mutation_gate = asyncio.Event()

        first = asyncio.create_task(
            board.request_transition(1, Department.RESUME, attachments={AttachmentKind.RESUME: RESUME})
        )
        await asyncio.sleep(0)
        self.assertEqual(board.status, BoardStatus.SUBMITTING)

        second = await board.request_transition(2, Department.RESUME, attachments={AttachmentKind.RESUME: RESUME})
        self.assertEqual(second, MutationResult.IGNORED)
        self.assertTrue(board.view().performing_action)

        backend.mutation_gate.set()
        self.assertEqual(await first, MutationResult.APPLIED)
        self.assertEqual(board.status, BoardStatus.IDLE)
        self.assertListEqual([u["client_id"] for u in backend.stage_updates], [1])

        third = await board.request_transition(2, Department.RESUME, attachments={AttachmentKind.RESUME: RESUME})
        self.assertEqual(third, MutationResult.APPLIED)

    async def test_gathered_mutations_only_run_once(self) -> None:
        board, backend = await _board(Role.SALES_EXECUTIVE)

        results = await asyncio.gather(
            board.request_transition(1, Department.RESUME, attachments={AttachmentKind.RESUME: RESUME}),
            board.request_transition(2, Department.ON_HOLD, notes="Waiting on visa"),
        )

        self.assertListEqual(results, [MutationResult.APPLIED, MutationResult.IGNORED])
        self.assertEqual(len(backend.stage_updates), 1)

    async def test_search_and_selection_are_blocked_while_submitting(self) -> None:
        board, backend = await _board(Role.SALES_EXECUTIVE)
        backend.mutation_gate = asyncio.Event()
        pending = asyncio.create_task(board.request_transition(1, "Backed Out", notes="n", back_out_reason="r"))
        await asyncio.sleep(0)

        self.assertEqual(board.set_search("alan"), "")
        self.assertIsNone(await board.select_client(1))

        backend.mutation_gate.set()
        await pending
        self.assertEqual(board.set_search("alan"), "alan")


class BoardTransitionTests(unittest.IsolatedAsyncioTestCase):
    async def test_validation_happens_before_any_network_call(self) -> None:
        board, backend = await _board(Role.RECRUITER)

        with self.assertRaises(TransitionValidationError):
            await board.request_transition(5, Department.COMPLETED, attachments={AttachmentKind.OFFER_LETTER: OFFER})
        with self.assertRaises(TransitionValidationError):
            await board.request_transition(5, Department.COMPLETED, notes="Signed")
        with self.assertRaises(TransitionValidationError):
            await board.request_transition(5, Department.BACKED_OUT, notes="Withdrew")

        self.assertEqual(backend.stage_updates, [])
        self.assertIsNone(board.error)
        self.assertEqual(board.status, BoardStatus.IDLE)

    async def test_disallowed_destination_is_denied(self) -> None:
        board, backend = await _board(Role.RESUME_WRITER)

        with self.assertRaises(PermissionDeniedError):
            await board.request_transition(
                3,
                Department.MARKETING,
                attachments={AttachmentKind.COVER_LETTER: RESUME, AttachmentKind.UPDATED_RESUME: RESUME},
            )
        self.assertEqual(backend.stage_updates, [])

    async def test_successful_transition_refetches_and_clears_draft(self) -> None:
        board, backend = await _board(Role.RECRUITER)
        fetches = len(backend.fetches)

        result = await board.request_transition(
            5, Department.COMPLETED, attachments={AttachmentKind.OFFER_LETTER: OFFER}, notes="Signed with Acme"
        )

        self.assertEqual(result, MutationResult.APPLIED)
        self.assertEqual(len(backend.fetches), fetches + 1)
        self.assertIsNone(board.draft)
        self.assertEqual(board.roster.get(5).department, Department.COMPLETED)
        update = backend.stage_updates[0]
        self.assertEqual(update["attachments"], {AttachmentKind.OFFER_LETTER: OFFER})
        self.assertEqual(update["notes"], "Signed with Acme")

    async def test_backend_failure_sets_banner_and_skips_refetch(self) -> None:
        board, backend = await _board(Role.SALES_EXECUTIVE)
        backend.mutation_error = BackendError("Stage update rejected", 400)
        fetches = len(backend.fetches)

        result = await board.request_transition(1, Department.RESUME, attachments={AttachmentKind.RESUME: RESUME})

        self.assertEqual(result, MutationResult.FAILED)
        self.assertEqual(board.error, "Stage update rejected")
        self.assertEqual(len(backend.fetches), fetches)
        self.assertEqual(board.roster.get(1).department, Department.SALES)
        self.assertIsNotNone(board.draft)
        self.assertEqual(board.status, BoardStatus.IDLE)

        board.clear_error()
        self.assertIsNone(board.view().error)

    async def test_move_flags_block_open_edges(self) -> None:
        backend = FakeBackend(
            [
                make_client(1, "Completed"),
                make_client(2, "OnHold", ["Acknowledged-Recruiter-Marketing"]),
            ]
        )
        for role, client_id, target in (
            (Role.SALES_EXECUTIVE, 1, Department.REMARKETING),
            (Role.RECRUITER, 2, Department.MARKETING),
        ):
            board = PipelineBoard(backend, UserContext(user_id=9, role=role))
            await board.load()
            self.assertListEqual(board.allowed_destinations(client_id), [])
            with self.assertRaises(PermissionDeniedError):
                await board.request_transition(client_id, target, notes="Moving on")
        self.assertEqual(backend.stage_updates, [])

    async def test_remarketing_client_keeps_marketing_acknowledgment(self) -> None:
        backend = FakeBackend([make_client(6, "ReMarketing", ["Acknowledged-Recruiter-Marketing"])])
        board = PipelineBoard(backend, UserContext(user_id=30, role=Role.RECRUITER))
        await board.load()

        self.assertListEqual(
            board.allowed_destinations(6), [Department.COMPLETED, Department.BACKED_OUT, Department.ON_HOLD]
        )
        result = await board.request_transition(6, Department.ON_HOLD, notes="Client paused search")

        self.assertEqual(result, MutationResult.APPLIED)
        self.assertEqual(backend.stage_updates[0]["department"], Department.ON_HOLD)

    async def test_unknown_client(self) -> None:
        board, _ = await _board(Role.ADMIN)
        with self.assertRaises(ClientNotFoundError):
            await board.request_transition(99, Department.ON_HOLD, notes="n")

    async def test_admin_destinations(self) -> None:
        board, _ = await _board(Role.ADMIN)
        self.assertListEqual(board.allowed_destinations(1), [d for d in ALL_DEPARTMENTS if d != Department.SALES])


class BoardActionTests(unittest.IsolatedAsyncioTestCase):
    async def test_completed_actions_only_grow(self) -> None:
        board, backend = await _board(Role.RESUME_WRITER)
        before = list(board.roster.get(3).completed_actions)

        result = await board.perform_named_action(3, "Initial Call Done", notes="Call went well")

        self.assertEqual(result, MutationResult.APPLIED)
        after = board.roster.get(3).completed_actions
        self.assertTrue(set(before) < set(after))
        self.assertEqual(backend.actions[0]["action_type"], "Initial Call Done")
        self.assertFalse(board.action_loading["3-Initial Call Done-Resume_Writer"])

    async def test_acknowledgment_is_sent_as_scoped_key(self) -> None:
        board, backend = await _board(Role.SENIOR_RECRUITER, user_id=21)

        await board.perform_named_action(4, "Acknowledged")

        self.assertEqual(backend.actions[0]["action_type"], "Acknowledged-Senior_Recruiter-Marketing")
        # Senior recruiter sign-off refetches for the assigned senior recruiter.
        self.assertEqual(backend.fetches[-1], 7)

    async def test_other_actions_refetch_with_default_scope(self) -> None:
        board, backend = await _board(Role.RESUME_WRITER)
        await board.perform_named_action(3, "Initial Call Done", notes="ok")
        self.assertIsNone(backend.fetches[-1])

    async def test_assign_senior_recruiter(self) -> None:
        board, backend = await _board(Role.MARKETING_MANAGER)

        result = await board.assign_senior_recruiter(4, 12)

        self.assertEqual(result, MutationResult.APPLIED)
        action = backend.actions[0]
        self.assertEqual(action["action_type"], "AssignSeniorRecruiter-12")
        self.assertEqual(action["recruiter_id"], 12)
        self.assertEqual(backend.fetches[-1], 12)
        self.assertFalse(board.dropdown_loading["4-AssignSeniorRecruiter"])

    async def test_assign_recruiter_requires_senior_recruiter(self) -> None:
        board, backend = await _board(Role.SENIOR_RECRUITER)

        with self.assertRaises(ActionValidationError):
            await board.assign_recruiter(5, 30)

        self.assertEqual(await board.assign_recruiter(4, 30), MutationResult.APPLIED)
        self.assertEqual(board.roster.get(4).recruiter_id, 30)

    async def test_action_failure_sets_banner(self) -> None:
        board, backend = await _board(Role.RESUME_WRITER)
        backend.mutation_error = BackendError("Action rejected", 409)
        fetches = len(backend.fetches)

        result = await board.perform_named_action(3, "Initial Call Done", notes="ok")

        self.assertEqual(result, MutationResult.FAILED)
        self.assertEqual(board.error, "Action rejected")
        self.assertEqual(len(backend.fetches), fetches)


class BoardViewTests(unittest.IsolatedAsyncioTestCase):
    async def test_view_groups_clients_in_column_order(self) -> None:
        board, _ = await _board(Role.MARKETING_MANAGER)

        view = board.view()

        self.assertListEqual([column.department for column in view.columns], list(ALL_DEPARTMENTS))
        marketing = view.columns[2]
        self.assertEqual(marketing.count, 2)
        card = next(c for c in marketing.clients if c.id == 4)
        self.assertTrue(card.capabilities.can_assign_senior_recruiter)
        self.assertEqual(card.senior_recruiter_id, 7)
        self.assertNotIn(Department.RESUME, card.allowed_destinations)
        self.assertEqual(len(card.allowed_destinations), 5)
        self.assertEqual(len(view.recruiters), 1)

    async def test_action_states_follow_prerequisites(self) -> None:
        board, _ = await _board(Role.RESUME_WRITER)

        card = board.view().columns[1].clients[0]
        states = {state.action: state for state in card.actions}

        self.assertTrue(states["Acknowledged"].completed)
        self.assertFalse(states["Acknowledged"].enabled)
        self.assertTrue(states["Initial Call Done"].enabled)
        self.assertFalse(states["Resume Completed"].enabled)
        self.assertEqual(card.allowed_destinations, [])

    async def test_sla_on_cards(self) -> None:
        board, _ = await _board(Role.ADMIN)

        cards = {card.id: card for column in board.view().columns for card in column.clients}

        self.assertEqual(cards[5].sla.status, "overdue")
        self.assertEqual(cards[5].sla.max_days, 180)
        self.assertEqual(cards[1].sla.status, "warning")
        self.assertEqual(cards[4].sla.status, "on-track")
        # 200 calendar days back spans roughly 143 weekdays.
        self.assertTrue(135 < cards[5].sla.business_days < 150)

    async def test_load_failure_sets_banner(self) -> None:
        backend = FakeBackend(_clients())
        backend.fetch_error = BackendError("Backend unavailable", 503)
        board = PipelineBoard(backend, UserContext(user_id=1, role=Role.ADMIN))

        self.assertFalse(await board.load())
        self.assertEqual(board.view().error, "Backend unavailable")

    async def test_select_client_fetches_details(self) -> None:
        board, _ = await _board(Role.ADMIN)

        details = await board.select_client(4)

        self.assertEqual(details.email, "client4@example.com")
        self.assertEqual(board.view().selected_client.id, 4)
        with self.assertRaises(BackendError):
            await board.select_client(99)
        self.assertEqual(board.error, "Client not found")


class BoardRegistryTests(unittest.TestCase):
    def test_one_board_per_user_and_role(self) -> None:
        registry = BoardRegistry(FakeBackend())
        admin = registry.get(UserContext(user_id=1, role=Role.ADMIN))

        self.assertIs(registry.get(UserContext(user_id=1, role=Role.ADMIN)), admin)
        self.assertIsNot(registry.get(UserContext(user_id=1, role=Role.RECRUITER)), admin)
        self.assertEqual(len(registry), 2)


if __name__ == "__main__":
    unittest.main()
