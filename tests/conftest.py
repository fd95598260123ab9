from decimal import Decimal
import pytest
from fastapi.testclient import TestClient
from marketplace.core.auth import Caller
from marketplace.core.config import Settings
from marketplace.db.models import Product, Role, User
from marketplace.db.session import Base, make_engine, make_session_factory
from marketplace.main import create_app
from marketplace.security.utils import create_access_token, hash_password

PASSWORD = "correct-horse"
PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'marketplace.db'}")
    Base.metadata.create_all(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    app = create_app(Settings(METRICS_ENABLED=False, LOG_LEVEL="WARNING"), session_factory=session_factory)
    with TestClient(app) as c:
        yield c


def _user(db, email, role):
    user = User(email=email, name=email.split("@")[0], password_hash=PASSWORD_HASH, role=role)
    db.add(user); db.commit(); db.refresh(user)
    return user


@pytest.fixture
def admin(db):
    return _user(db, "admin@example.com", Role.ADMIN)


@pytest.fixture
def customer(db):
    return _user(db, "buyer@example.com", Role.USER)


@pytest.fixture
def other_customer(db):
    return _user(db, "other@example.com", Role.USER)


@pytest.fixture
def artisan(db):
    return _user(db, "potter@example.com", Role.ARTISAN)


@pytest.fixture
def make_product(db, artisan):
    def _make(name="Mug", price="10.00", stock=5, owner=None):
        product = Product(name=name, price=Decimal(price), stock=stock, owner_id=(owner or artisan).id)
        db.add(product); db.commit(); db.refresh(product)
        return product
    return _make


def caller_for(user) -> Caller:
    return Caller(user_id=user.id, role=Role(user.role))


def auth(user) -> dict:
    token, _ = create_access_token(user.id, Role(user.role).value)
    return {"Authorization": f"Bearer {token}"}


def stock_of(session_factory, product_id) -> int:
    with session_factory() as s:
        return s.get(Product, product_id).stock
