from __future__ import annotations

import unittest

from pipeline_board.core.actions import required_actions
from pipeline_board.core.roles import Role
from pipeline_board.core.stage_machine import (
    ALL_DEPARTMENTS,
    STAGE_GRAPH,
    Department,
    graph_destinations,
    normalize_department,
    ordered,
)
from pipeline_board.core.transition_rules import allowed_destinations

ALL_ROLES: list[Role | None] = [*Role, None]


class StageMachineGraphTests(unittest.TestCase):
    def test_graph_covers_every_department(self) -> None:
        self.assertSetEqual(set(STAGE_GRAPH.keys()), set(ALL_DEPARTMENTS))

    def test_edges_point_to_known_departments(self) -> None:
        for source, edges in STAGE_GRAPH.items():
            for role, targets in edges.items():
                self.assertTrue(role is None or isinstance(role, Role))
                for target in targets:
                    self.assertIn(target, ALL_DEPARTMENTS, msg=f"{source} -> {target}")

    def test_destinations_never_include_current_department(self) -> None:
        for department in ALL_DEPARTMENTS:
            for role in ALL_ROLES:
                completed = [key.encode() for key in required_actions(department, role)]
                self.assertNotIn(department, graph_destinations(department, role))
                self.assertNotIn(department, allowed_destinations(department, role, completed))

    def test_admin_reaches_all_six_other_departments(self) -> None:
        for department in ALL_DEPARTMENTS:
            targets = allowed_destinations(department, Role.ADMIN, [])
            self.assertEqual(len(targets), 6)
            self.assertSetEqual(set(targets), set(ALL_DEPARTMENTS) - {department})

    def test_marketing_manager_bypasses_required_actions_but_not_move_flags(self) -> None:
        targets = allowed_destinations(Department.MARKETING, Role.MARKETING_MANAGER, [])
        self.assertSetEqual(
            set(targets),
            {Department.SALES, Department.COMPLETED, Department.BACKED_OUT, Department.REMARKETING, Department.ON_HOLD},
        )
        self.assertEqual(allowed_destinations(Department.SALES, Role.MARKETING_MANAGER, []), frozenset())

    def test_role_specific_edges(self) -> None:
        self.assertSetEqual(
            set(graph_destinations(Department.SALES, Role.SALES_EXECUTIVE)),
            {Department.RESUME, Department.BACKED_OUT, Department.ON_HOLD},
        )
        self.assertSetEqual(set(graph_destinations(Department.SALES, Role.RECRUITER)), set())
        self.assertSetEqual(set(graph_destinations(Department.COMPLETED, Role.RECRUITER)), {Department.REMARKETING})

    def test_unknown_department_has_no_destinations(self) -> None:
        self.assertEqual(graph_destinations("Archived", Role.ADMIN), frozenset())


class DepartmentNormalizationTests(unittest.TestCase):
    def test_aliases(self) -> None:
        self.assertEqual(normalize_department("In Sales"), Department.SALES)
        self.assertEqual(normalize_department("Resume Preparation"), Department.RESUME)
        self.assertEqual(normalize_department("Backed Out"), Department.BACKED_OUT)
        self.assertEqual(normalize_department("BackedOut"), Department.BACKED_OUT)
        self.assertEqual(normalize_department("Placed"), Department.COMPLETED)
        self.assertEqual(normalize_department(" on hold "), Department.ON_HOLD)
        self.assertEqual(normalize_department("ReMarketing"), Department.REMARKETING)

    def test_unknown_labels(self) -> None:
        self.assertIsNone(normalize_department("Archived"))
        self.assertIsNone(normalize_department(""))

    def test_labels_and_column_order(self) -> None:
        self.assertEqual(Department.BACKED_OUT.label, "Backed Out")
        self.assertEqual(Department.SALES.label, "Sales")
        self.assertListEqual(
            ordered({Department.ON_HOLD, Department.SALES, Department.COMPLETED}),
            [Department.SALES, Department.COMPLETED, Department.ON_HOLD],
        )


if __name__ == "__main__":
    unittest.main()
