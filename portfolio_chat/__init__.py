from portfolio_chat.models import Base


def init_db(engine=None):
    """
    Create all tables (simple dev mode; no migrations).
    """
    if engine is None:
        from portfolio_chat.db import make_engine
        engine = make_engine()
    Base.metadata.create_all(bind=engine)
