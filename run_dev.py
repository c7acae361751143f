import os
import sys
import contextlib

from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from main import app
from planner import db


@contextlib.contextmanager
def quiet_stderr():
    with open(os.devnull, "w") as sink:
        saved, sys.stderr = sys.stderr, sink
        try:
            yield
        finally:
            sys.stderr = saved


def database_reachable() -> bool:
    """SELECT 1 against the configured DB_URI; scenario routes need it."""
    with quiet_stderr():
        try:
            with app.app_context():
                db.session.execute(text("SELECT 1"))
        except OperationalError as e:
            print(f"database unreachable: {e.orig}", file=sys.__stderr__)
            return False
    return True


def main():
    if not database_reachable():
        sys.exit(1)
    print(f"database ok ({app.config['SQLALCHEMY_DATABASE_URI']}), MC batch size {app.config.get('MC_BATCH_SIZE')}")
    app.run(debug=True)


if __name__ == "__main__":
    main()
