import hashlib
import unittest

from clubraffle.drawing.lottery import Packet, Participant
from clubraffle.drawing.seed import (
    SEED_LENGTH,
    derive_seed,
    parse_timestamp,
    sort_names,
    timestamp_seconds,
)
from clubraffle.exceptions import InvalidTimestampError

PRIZE_SEED = (
    "5b1ace50a5b0732c31c27eb67e68b3bddf7c420488b1ad6553c2d7f26b977fbe"
    "07489bf55d1b8c6aa7d5ff39deb8250760d1cd66b6bbbedc8d3d4b2fff2539ef"
)


def _prize_packet(*participants: tuple[str, int]) -> Packet:
    return Packet(
        id=1,
        title="Prize",
        participants=tuple(Participant(name, tickets) for name, tickets in participants),
    )


class TestTimestamps(unittest.TestCase):
    def test_z_suffix_and_offset_are_equivalent(self):
        self.assertEqual(timestamp_seconds("2024-01-01T00:00:00Z"), 1704067200)
        self.assertEqual(timestamp_seconds("2024-01-01T00:00:00+00:00"), 1704067200)
        self.assertEqual(timestamp_seconds("2024-01-01T01:00:00+01:00"), 1704067200)

    def test_sub_second_precision_is_discarded(self):
        self.assertEqual(timestamp_seconds("2024-01-01T00:00:00.999Z"), 1704067200)

    def test_naive_and_date_only_values_are_utc(self):
        self.assertEqual(timestamp_seconds("2024-01-01T00:00:00"), 1704067200)
        self.assertEqual(timestamp_seconds("2024-01-01"), 1704067200)

    def test_basic_format_and_compact_offsets(self):
        for value in (
            "20240101T000000Z",
            "2024-01-01T00:00:00+0000",
            "2024-01-01T01:00:00+0100",
            "20240101T010000+01:00",
        ):
            with self.subTest(value=value):
                self.assertEqual(timestamp_seconds(value), 1704067200)

    def test_invalid_timestamp_raises(self):
        for value in ("not-a-date", "", "2024-13-01T00:00:00Z", None, 1704067200):
            with self.subTest(value=value):
                with self.assertRaises(InvalidTimestampError):
                    parse_timestamp(value)  # type: ignore[arg-type]

    def test_invalid_timestamp_is_a_value_error(self):
        with self.assertRaises(ValueError):
            derive_seed("yesterday", [])


class TestSortNames(unittest.TestCase):
    def test_sorts_by_utf16_code_units(self):
        # U+FF5E sorts after the surrogate pair of U+1F600 in UTF-16
        names = ["～", "b", "\U0001F600", "a"]
        self.assertEqual(sort_names(names), ["a", "b", "\U0001F600", "～"])

    def test_case_sensitive_ordering(self):
        self.assertEqual(sort_names(["bob", "Bob", "alice"]), ["Bob", "alice", "bob"])


class TestDeriveSeed(unittest.TestCase):
    def test_known_seed(self):
        seed = derive_seed(
            "2024-01-01T00:00:00Z",
            [_prize_packet(("alice", 2), ("bob", 1), ("charlie", 1))],
        )
        self.assertEqual(seed, PRIZE_SEED)
        self.assertEqual(len(seed), SEED_LENGTH)

    def test_seed_is_deterministic(self):
        packets = [_prize_packet(("alice", 2), ("bob", 1))]
        first = derive_seed("2024-03-05T10:20:30Z", packets)
        second = derive_seed("2024-03-05T10:20:30Z", packets)
        self.assertEqual(first, second)

    def test_participant_order_within_packet_is_irrelevant(self):
        forward = derive_seed(
            "2024-01-01T00:00:00Z",
            [_prize_packet(("alice", 2), ("bob", 1), ("charlie", 1))],
        )
        shuffled = derive_seed(
            "2024-01-01T00:00:00Z",
            [_prize_packet(("charlie", 1), ("alice", 2), ("bob", 1))],
        )
        self.assertEqual(forward, shuffled)

    def test_packet_order_is_significant(self):
        first = Packet(id=1, title="A", participants=(Participant("bob", 1),))
        second = Packet(id=2, title="B", participants=(Participant("alice", 1),))
        seed = derive_seed("2024-01-01T00:00:00Z", [first, second])
        self.assertEqual(
            seed, hashlib.sha512(b"1704067200bobalice").hexdigest()
        )
        self.assertNotEqual(
            seed, derive_seed("2024-01-01T00:00:00Z", [second, first])
        )

    def test_empty_input_hashes_only_the_timestamp(self):
        self.assertEqual(
            derive_seed("2024-01-01T00:00:00Z", []),
            hashlib.sha512(b"1704067200").hexdigest(),
        )

    def test_changes_with_timestamp_names_and_ticket_counts(self):
        base = derive_seed("2024-01-01T00:00:00Z", [_prize_packet(("alice", 1))])
        variants = [
            derive_seed("2024-01-01T00:00:01Z", [_prize_packet(("alice", 1))]),
            derive_seed("2024-01-01T00:00:00Z", [_prize_packet(("alicia", 1))]),
            derive_seed("2024-01-01T00:00:00Z", [_prize_packet(("alice", 2))]),
            derive_seed(
                "2024-01-01T00:00:00Z", [_prize_packet(("alice", 1), ("bob", 1))]
            ),
        ]
        for variant in variants:
            self.assertNotEqual(base, variant)

    def test_titles_do_not_affect_seed(self):
        renamed = Packet(id=1, title="Other", participants=(Participant("alice", 1),))
        self.assertEqual(
            derive_seed("2024-01-01T00:00:00Z", [_prize_packet(("alice", 1))]),
            derive_seed("2024-01-01T00:00:00Z", [renamed]),
        )


if __name__ == "__main__":
    unittest.main()
