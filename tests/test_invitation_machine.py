from __future__ import annotations

from collections import deque
import unittest

from campus_drive.core.invitation_machine import (
    ACCEPTED,
    ALL_STATUSES,
    DECLINED,
    EXPIRED,
    INVITATION_GRAPH,
    NEGOTIATING,
    OPEN_STATUSES,
    PENDING,
    can_transition,
    is_known_status,
    normalize_status,
)


TERMINAL = (ACCEPTED, DECLINED, EXPIRED)


class InvitationMachineDiagramTests(unittest.TestCase):
    def test_graph_covers_all_known_statuses(self) -> None:
        self.assertSetEqual(set(INVITATION_GRAPH.keys()), set(ALL_STATUSES))

    def test_all_edges_point_to_known_statuses(self) -> None:
        known = set(ALL_STATUSES)
        for source, targets in INVITATION_GRAPH.items():
            self.assertIn(source, known)
            for target in targets:
                self.assertIn(target, known)

    def test_only_open_statuses_have_outgoing_edges(self) -> None:
        for status in ALL_STATUSES:
            self.assertEqual(bool(INVITATION_GRAPH[status]), status in OPEN_STATUSES, msg=status)

    def test_status_normalization(self) -> None:
        self.assertEqual(normalize_status("  ACCEPTED "), ACCEPTED)
        self.assertIsNone(normalize_status(""))
        self.assertIsNone(normalize_status(None))
        self.assertTrue(is_known_status("Negotiating"))
        self.assertFalse(is_known_status("withdrawn"))

    def test_new_invitations_enter_as_pending(self) -> None:
        self.assertTrue(can_transition(None, PENDING))
        self.assertFalse(can_transition(None, NEGOTIATING))
        self.assertFalse(can_transition(None, ACCEPTED))

    def test_negotiation_rounds_can_repeat(self) -> None:
        self.assertTrue(can_transition(PENDING, NEGOTIATING))
        self.assertTrue(can_transition(NEGOTIATING, NEGOTIATING))
        for target in (ACCEPTED, DECLINED, EXPIRED):
            self.assertTrue(can_transition(NEGOTIATING, target), msg=target)

    def test_pending_cannot_stay_pending(self) -> None:
        self.assertFalse(can_transition(PENDING, PENDING))

    def test_terminal_statuses_never_move(self) -> None:
        for status in TERMINAL:
            for target in ALL_STATUSES:
                self.assertFalse(can_transition(status, target), msg=f"{status} -> {target}")

    def test_unknown_statuses_are_rejected(self) -> None:
        self.assertFalse(can_transition(PENDING, "withdrawn"))
        self.assertFalse(can_transition("withdrawn", ACCEPTED))
        self.assertFalse(can_transition(PENDING, None))

    def test_every_terminal_status_is_reachable_from_pending(self) -> None:
        reachable: set[str] = set()
        queue = deque([PENDING])
        while queue:
            node = queue.popleft()
            if node in reachable:
                continue
            reachable.add(node)
            queue.extend(INVITATION_GRAPH[node])

        self.assertTrue(set(TERMINAL).issubset(reachable))


if __name__ == "__main__":
    unittest.main()
