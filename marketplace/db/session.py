from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

class Base(DeclarativeBase): pass

def make_engine(dsn: str) -> Engine:
    kwargs = {'pool_pre_ping': True}
    if dsn.startswith('sqlite'):
        kwargs['connect_args'] = {'check_same_thread': False}
    return create_engine(dsn, **kwargs)

def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
