import json
import os
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from clubraffle.models import (
    Base,
    Raffle,
    RaffleDrawResult,
    RafflePacket,
    RaffleTicket,
    User,
)

ENDS = datetime(2024, 1, 15, tzinfo=timezone.utc)


class TestRaffleModel(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )

    def tearDown(self) -> None:
        self.engine.dispose()

    def _owner(self, session) -> User:
        owner = User("olivia")
        session.add(owner)
        session.flush()
        return owner

    def test_username_is_trimmed_and_required(self):
        self.assertEqual(User("  alice ").username, "alice")
        with self.assertRaises(ValueError):
            User("   ")

    def test_get_by_username(self):
        with self.Session.begin() as session:
            owner = self._owner(session)
            self.assertIs(User.get_by_username(session, "olivia"), owner)
            self.assertIsNone(User.get_by_username(session, "nobody"))

    def test_validators(self):
        with self.assertRaises(ValueError):
            Raffle(title="x", drawing_mode="lucky")
        with self.assertRaises(ValueError):
            Raffle(title="x", state="paused")
        with self.assertRaises(ValueError):
            Raffle(title="x", duration_days=5)
        with self.assertRaises(ValueError):
            Raffle(title="x", duration_days=29)
        with self.assertRaises(ValueError):
            RafflePacket(title="x", ordinal=0, quantity=0)
        self.assertEqual(Raffle(title="x", duration_days=28).duration_days, 28)

    def test_draw_timestamp_prefers_published_at(self):
        raffle = Raffle(
            title="x",
            published_at=datetime(2024, 1, 1, 9, 0, tzinfo=timezone(timedelta(hours=9))),
            ends_at=ENDS,
        )
        self.assertEqual(raffle.draw_timestamp(), "2024-01-01T00:00:00+00:00")

    def test_draw_timestamp_reconstructed_from_end(self):
        raffle = Raffle(title="x", ends_at=ENDS, duration_days=7)
        self.assertEqual(raffle.draw_timestamp(), "2024-01-08T00:00:00+00:00")

        fallback = Raffle(title="x", ends_at=ENDS)
        with patch.dict(os.environ, {"RAFFLE_DEFAULT_DURATION_DAYS": ""}):
            self.assertEqual(fallback.draw_timestamp(), "2024-01-01T00:00:00+00:00")
        with patch.dict(os.environ, {"RAFFLE_DEFAULT_DURATION_DAYS": "21"}):
            self.assertEqual(fallback.draw_timestamp(), "2023-12-25T00:00:00+00:00")

    def test_draw_timestamp_falls_back_to_creation(self):
        created = datetime(2023, 6, 1, 12, 0, tzinfo=timezone.utc)
        raffle = Raffle(title="x", created_at=created)
        self.assertEqual(raffle.draw_timestamp(), created.isoformat())

    def test_is_ended_handles_naive_values(self):
        raffle = Raffle(title="x", ends_at=ENDS.replace(tzinfo=None))
        self.assertFalse(raffle.is_ended(ENDS - timedelta(seconds=1)))
        self.assertTrue(raffle.is_ended(ENDS))
        self.assertFalse(Raffle(title="x").is_ended(ENDS))

    def test_can_be_drawn_by(self):
        with self.Session.begin() as session:
            owner = self._owner(session)
            stranger = User("stranger")
            staff = User("staff", is_staff=True)
            session.add_all([stranger, staff])
            raffle = Raffle(title="x", owner=owner)
            session.add(raffle)
            session.flush()
            self.assertTrue(raffle.can_be_drawn_by(owner))
            self.assertTrue(raffle.can_be_drawn_by(staff))
            self.assertFalse(raffle.can_be_drawn_by(stranger))
            self.assertFalse(raffle.can_be_drawn_by(None))

    def test_one_ticket_per_user_and_packet(self):
        with self.assertRaises(IntegrityError):
            with self.Session.begin() as session:
                owner = self._owner(session)
                raffle = Raffle(title="x", owner=owner)
                packet = RafflePacket(title="Prize", ordinal=0, raffle=raffle)
                session.add_all([raffle, packet])
                session.flush()
                session.add(RaffleTicket(packet_id=packet.id, user_id=owner.id))
                session.flush()
                session.add(RaffleTicket(packet_id=packet.id, user_id=owner.id))
                session.flush()

    def test_ticket_counts_and_drawable_tickets(self):
        with self.Session.begin() as session:
            owner = self._owner(session)
            zoe, adam = User("zoe"), User("adam")
            session.add_all([zoe, adam])
            raffle = Raffle(title="x", owner=owner)
            prize = RafflePacket(title="Prize", ordinal=0, raffle=raffle)
            held = RafflePacket(title="Held", ordinal=1, reserved=True, raffle=raffle)
            session.add_all([raffle, prize, held])
            session.flush()

            self.assertFalse(raffle.has_drawable_tickets(session))
            session.add(RaffleTicket(packet=held, user=zoe))
            session.flush()
            self.assertFalse(raffle.has_drawable_tickets(session))

            session.add_all(
                [RaffleTicket(packet=prize, user=zoe), RaffleTicket(packet=prize, user=adam)]
            )
            session.flush()
            self.assertTrue(raffle.has_drawable_tickets(session))
            self.assertEqual(prize.ticket_counts(session), [(adam, 1), (zoe, 1)])

    def test_draw_result_serialization(self):
        with self.Session.begin() as session:
            owner = self._owner(session)
            raffle = Raffle(title="x", owner=owner)
            session.add(raffle)
            session.flush()
            record = RaffleDrawResult(
                raffle_id=raffle.id,
                mode="automatic",
                seed="ab" * 64,
                payload={"rngSeed": "ab" * 64, "title": "Ümlaut"},
                drawn_by_user_id=owner.id,
                created_at=ENDS,
            )
            session.add(record)
            session.flush()

            data = record.to_json()
            self.assertEqual(data["raffle_id"], raffle.id)
            self.assertEqual(data["created_at"], "2024-01-15T00:00:00+00:00")
            self.assertEqual(data["results"]["title"], "Ümlaut")
            self.assertIn("Ümlaut", record.to_json_str())
            self.assertEqual(json.loads(record.to_json_str()), data)


if __name__ == "__main__":
    unittest.main()
