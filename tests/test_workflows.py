import unittest
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from clubraffle.exceptions import (
    NotDrawnError,
    PermissionDeniedError,
    TicketError,
)
from clubraffle.models import Base, Raffle, RaffleTicket, User
from clubraffle.workflows import (
    add_packet,
    buy_ticket,
    create_raffle,
    end_raffle_early,
    get_draw_results,
    list_ready_to_draw,
    publish_raffle,
    return_ticket,
)

PUBLISHED = datetime(2024, 1, 1, tzinfo=timezone.utc)
DURING = PUBLISHED + timedelta(days=3)


class RaffleWorkflowTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )

    def tearDown(self) -> None:
        self.engine.dispose()

    def _seed(self, session):
        owner = User("olivia")
        alice = User("alice")
        bob = User("bob")
        session.add_all([owner, alice, bob])
        session.flush()
        raffle = create_raffle(
            session,
            owner,
            "Board game raffle",
            packets=[
                "Catan",
                {"title": "Dice", "quantity": 3},
                {"title": "Held for Bob", "reserved": True},
            ],
            duration_days=7,
        )
        return owner, alice, bob, raffle

    def test_create_raffle_assigns_ordinals(self):
        with self.Session.begin() as session:
            _, _, _, raffle = self._seed(session)
            session.refresh(raffle)
            self.assertEqual([p.ordinal for p in raffle.packets], [0, 1, 2])
            self.assertEqual([p.title for p in raffle.packets], ["Catan", "Dice", "Held for Bob"])
            self.assertEqual(raffle.packets[1].quantity, 3)
            self.assertTrue(raffle.packets[2].reserved)
            self.assertEqual([p.title for p in raffle.drawable_packets], ["Catan", "Dice"])

            extra = add_packet(session, raffle, "Sleeves")
            self.assertEqual(extra.ordinal, 3)

    def test_create_raffle_requires_persisted_owner(self):
        with self.Session.begin() as session:
            with self.assertRaises(ValueError):
                create_raffle(session, User("ghost"), "Nope")

    def test_publish_sets_end_time_from_duration(self):
        with self.Session.begin() as session:
            _, _, _, raffle = self._seed(session)
            publish_raffle(session, raffle, now=PUBLISHED)
            self.assertEqual(raffle.published_at, PUBLISHED)
            self.assertEqual(raffle.ends_at, PUBLISHED + timedelta(days=7))
            self.assertEqual(raffle.draw_timestamp(), "2024-01-01T00:00:00+00:00")
            with self.assertRaises(ValueError):
                publish_raffle(session, raffle, now=PUBLISHED)

    def test_buy_and_return_ticket(self):
        with self.Session.begin() as session:
            _, alice, _, raffle = self._seed(session)
            publish_raffle(session, raffle, now=PUBLISHED)
            catan = raffle.packets[0]

            ticket = buy_ticket(session, catan, alice, now=DURING)
            self.assertEqual(ticket.user_id, alice.id)
            self.assertEqual(catan.ticket_counts(session), [(alice, 1)])

            with self.assertRaises(TicketError) as ctx:
                buy_ticket(session, catan, alice, now=DURING)
            self.assertEqual(ctx.exception.code, "duplicate_ticket")

            return_ticket(session, catan, alice, now=DURING)
            self.assertIsNone(
                session.scalar(select(RaffleTicket).where(RaffleTicket.user_id == alice.id))
            )
            with self.assertRaises(TicketError) as ctx:
                return_ticket(session, catan, alice, now=DURING)
            self.assertEqual(ctx.exception.code, "ticket_not_found")

    def test_ticket_window_rules(self):
        with self.Session.begin() as session:
            _, alice, _, raffle = self._seed(session)
            catan, _, reserved = raffle.packets

            with self.assertRaises(TicketError) as ctx:
                buy_ticket(session, catan, alice, now=DURING)
            self.assertEqual(ctx.exception.code, "lottery_unpublished")

            publish_raffle(session, raffle, now=PUBLISHED)
            with self.assertRaises(TicketError) as ctx:
                buy_ticket(session, reserved, alice, now=DURING)
            self.assertEqual(ctx.exception.code, "packet_reserved")

            with self.assertRaises(TicketError) as ctx:
                buy_ticket(session, catan, alice, now=PUBLISHED + timedelta(days=8))
            self.assertEqual(ctx.exception.code, "lottery_ended")

    def test_end_early_requires_owner_or_staff(self):
        with self.Session.begin() as session:
            owner, alice, _, raffle = self._seed(session)
            publish_raffle(session, raffle, now=PUBLISHED)

            with self.assertRaises(PermissionDeniedError):
                end_raffle_early(session, raffle, alice, now=DURING)

            self.assertEqual(list_ready_to_draw(session, now=DURING), [])
            end_raffle_early(session, raffle, owner, now=DURING)
            self.assertTrue(raffle.is_ended(DURING))
            self.assertEqual(list_ready_to_draw(session, now=DURING), [raffle])

    def test_list_ready_to_draw_orders_by_end_time(self):
        with self.Session.begin() as session:
            owner, _, _, first = self._seed(session)
            second = create_raffle(session, owner, "Second", duration_days=14)
            unpublished = create_raffle(session, owner, "Draft")
            publish_raffle(session, second, now=PUBLISHED - timedelta(days=14))
            publish_raffle(session, first, now=PUBLISHED)

            later = PUBLISHED + timedelta(days=30)
            ready = list_ready_to_draw(session, now=later)
            self.assertEqual([r.title for r in ready], ["Second", "Board game raffle"])
            self.assertNotIn(unpublished, ready)

    def test_results_before_drawing(self):
        with self.Session.begin() as session:
            _, _, _, raffle = self._seed(session)
            with self.assertRaises(NotDrawnError):
                get_draw_results(session, raffle)

    def test_staff_may_end_any_raffle(self):
        with self.Session.begin() as session:
            _, _, _, raffle = self._seed(session)
            staff = User("sam", is_staff=True)
            session.add(staff)
            session.flush()
            publish_raffle(session, raffle, now=PUBLISHED)
            end_raffle_early(session, raffle, staff, now=DURING)
            self.assertIsInstance(raffle, Raffle)
            self.assertEqual(raffle.completion_status(DURING), "ready_to_draw")


if __name__ == "__main__":
    unittest.main()
