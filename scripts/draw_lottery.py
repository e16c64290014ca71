"""Run a raffle drawing from exported drawing data or straight from the database.

With a JSON file (or ``-`` for stdin) the lottery is computed exactly as a
proposer would and the result is printed. With ``--raffle-id`` the drawing
data is fetched from the configured database, the result is submitted for
verification, and the stored record is printed.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from clubraffle.db.engine import get_sessionmaker, make_engine
from clubraffle.drawing import DrawInput, run_lottery
from clubraffle.exceptions import RaffleError
from clubraffle.models import Raffle, User
from clubraffle.workflows import fetch_drawing_data, submit_draw


def _load(path: str) -> dict:
    if path == "-":
        return json.load(sys.stdin)
    with open(path, encoding="utf-8") as fh:
        return json.load(fh)


def draw_from_file(path: str) -> dict:
    return run_lottery(DrawInput.from_dict(_load(path))).to_dict()


def draw_from_database(raffle_id: int, username: str) -> dict:
    Session = get_sessionmaker(make_engine())
    with Session.begin() as session:
        raffle = session.get(Raffle, raffle_id)
        if raffle is None:
            raise SystemExit(f"Raffle {raffle_id} not found")
        user = User.get_by_username(session, username)
        data = fetch_drawing_data(session, raffle, user)
        proposed = run_lottery(DrawInput.from_dict(data)).to_dict()
        record = submit_draw(session, raffle, user, proposed)
        return record.to_json()


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("path", nargs="?", help="drawing data JSON file, or - for stdin")
    parser.add_argument("--raffle-id", type=int, help="draw this raffle from the database")
    parser.add_argument("--username", help="acting user for --raffle-id (owner or staff)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s [%(name)s] %(message)s")

    if args.raffle_id is not None:
        if not args.username:
            parser.error("--username is required with --raffle-id")
        try:
            output = draw_from_database(args.raffle_id, args.username)
        except RaffleError as exc:
            print(f"{exc.code}: {exc.message}", file=sys.stderr)
            return 1
    elif args.path:
        output = draw_from_file(args.path)
    else:
        parser.error("give a drawing data file or --raffle-id")

    print(json.dumps(output, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
