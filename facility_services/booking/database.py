# ============================================================
# database.py: Engine and session scoping
# ------------------------------------------------------------
# One engine per process. Components never share a Session:
# each operation opens its own and closes it on every exit
# path (``with new_session() as s``).
# ============================================================
from typing import Callable

from sqlalchemy.engine import Engine
from sqlmodel import Session, create_engine

from facility_services.booking.config import DATABASE_URL

SessionFactory = Callable[[], Session]

engine = create_engine(DATABASE_URL, pool_pre_ping=True)


def session_factory(bind: Engine) -> SessionFactory:
    # expire_on_commit=False: rows returned by repositories stay readable
    # after their session is closed
    def new_session() -> Session:
        return Session(bind, expire_on_commit=False)

    return new_session


new_session = session_factory(engine)

