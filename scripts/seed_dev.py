from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import sessionmaker

from clubraffle.db.engine import make_engine
from clubraffle.models import Base, RaffleTicket, User
from clubraffle.workflows import create_raffle, publish_raffle


def main() -> None:
    """Reset the development database and add a drawable demo raffle."""
    engine = make_engine()

    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        Base.metadata.drop_all(bind=conn)
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)

    now = datetime.now(timezone.utc)

    with Session.begin() as session:
        owner = User("raffle_host", created_at=now)
        staff = User("moderator", is_staff=True, created_at=now)
        members = [User(name, created_at=now) for name in ("alice", "bob", "charlie", "dora")]
        session.add_all([owner, staff, *members])
        session.flush()

        # published long enough ago that the raffle is ready to draw
        automatic = create_raffle(
            session,
            owner,
            "Spring board game raffle",
            packets=[
                "Catan",
                {"title": "Card sleeves", "quantity": 2},
                {"title": "Signed rulebook", "reserved": True},
                "Dice tower",
            ],
            duration_days=14,
        )
        publish_raffle(session, automatic, now=now - timedelta(days=15))

        manual = create_raffle(
            session,
            owner,
            "Helper thank-you raffle",
            packets=["Gift card"],
            drawing_mode="manual",
        )
        publish_raffle(session, manual, now=now - timedelta(days=1))

        catan, sleeves, _, _ = automatic.packets
        for user in members:
            session.add(RaffleTicket(packet_id=catan.id, user_id=user.id))
        for user in members[:3]:
            session.add(RaffleTicket(packet_id=sleeves.id, user_id=user.id))
        for user in members[1:]:
            session.add(RaffleTicket(packet_id=manual.packets[0].id, user_id=user.id))

    print("Development database seeded.")


if __name__ == "__main__":
    main()
