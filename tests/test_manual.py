import unittest

from clubraffle.drawing.manual import ManualPacket, validate_manual_selection
from clubraffle.exceptions import ManualSelectionError


class ManualSelectionTests(unittest.TestCase):
    def setUp(self):
        self.double = ManualPacket(
            id=10, title="Two tickets", quantity=2, participant_ids=(1, 2, 3)
        )
        self.single = ManualPacket(id=11, title="Mug", quantity=1, participant_ids=(2,))
        self.empty = ManualPacket(id=12, title="Nobody", quantity=1)

    def _assert_reason(self, reason, packets, selections):
        with self.assertRaises(ManualSelectionError) as ctx:
            validate_manual_selection(packets, selections)
        self.assertEqual(ctx.exception.reason, reason)
        return ctx.exception

    def test_exact_count_is_accepted_in_given_order(self):
        validated = validate_manual_selection(
            [self.double, self.single], {10: [3, 1], 11: [2]}
        )
        self.assertEqual(validated, {10: [3, 1], 11: [2]})

    def test_too_few_winners_rejected(self):
        error = self._assert_reason("wrong_count", [self.double], {10: [1]})
        self.assertEqual(error.packet_id, 10)

    def test_too_many_winners_rejected(self):
        self._assert_reason("wrong_count", [self.single], {11: [2, 2]})

    def test_quantity_capped_by_participants(self):
        big = ManualPacket(id=20, title="Crate", quantity=5, participant_ids=(1, 2))
        self.assertEqual(validate_manual_selection([big], {20: [2, 1]}), {20: [2, 1]})
        self._assert_reason("wrong_count", [big], {20: [1]})

    def test_non_participant_rejected(self):
        self._assert_reason("not_a_participant", [self.double], {10: [1, 99]})

    def test_duplicate_winner_rejected(self):
        self._assert_reason("duplicate_winner", [self.double], {10: [1, 1]})

    def test_missing_selection_rejected(self):
        self._assert_reason("missing_selection", [self.double, self.single], {10: [1, 2]})
        self._assert_reason("missing_selection", [self.single], {11: []})

    def test_non_list_selection_rejected(self):
        for value in (5, "1", {"winner": 2}):
            with self.subTest(value=value):
                error = self._assert_reason("invalid_selection", [self.single], {11: value})
                self.assertEqual(error.packet_id, 11)

    def test_unknown_packet_rejected(self):
        self._assert_reason("unknown_packet", [self.single], {11: [2], 77: [1]})

    def test_packet_without_participants_is_exempt(self):
        validated = validate_manual_selection([self.single, self.empty], {11: [2]})
        self.assertEqual(validated, {11: [2], 12: []})
        validated = validate_manual_selection([self.empty], {12: []})
        self.assertEqual(validated, {12: []})

    def test_packet_without_participants_cannot_get_winners(self):
        self._assert_reason("not_a_participant", [self.empty], {12: [2]})

    def test_string_identifiers_from_json_are_accepted(self):
        validated = validate_manual_selection([self.double], {"10": ["1", "2"]})
        # winner ids come back as the participant's own identifiers
        self.assertEqual(validated, {10: [1, 2]})

    def test_error_is_a_value_error(self):
        with self.assertRaises(ValueError):
            validate_manual_selection([self.single], {})


if __name__ == "__main__":
    unittest.main()
