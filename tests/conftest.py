import os
import threading
from collections import defaultdict
from concurrent.futures import Future
from datetime import datetime, timedelta, timezone
from typing import Generator

# Override settings for tests before importing marketplace modules
TEST_DATABASE_URL = "sqlite:///:memory:"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["JWT_SECRET"] = "test-secret-key-for-testing-only"
os.environ["BASE_URL"] = "http://testserver"
os.environ["PAYMENT_SERVICE_URL"] = "http://payments.test"
os.environ["PAYMENT_WEBHOOK_SECRET"] = "payment_whsec_test_mock"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from marketplace.config import settings
from marketplace.dependencies import get_timeout_reconciler
from marketplace.main import app
from marketplace.models import Application, Offer, OfferContent, OfferType, Order, OrderOrigin, OrderStatus, User
from marketplace.models.database import Base, get_db
from marketplace.services.context import RequestContext
from marketplace.services.order_history import TimeoutReconciler
from marketplace.services.redis_client import get_redis

# Create test database engine
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

WALLET = "GDZTQSCJQJS4TOWDKMCU5FCDINL2AUIQAKNNLW2H2OCHTC4W2F4YKVLZ"
APP_WALLET = "GCQZRQ7ZBTXP3GQ6MJJE2FDZBGTP7Z5LW3KAXKZ2RKXU6CSIUTUEAPP1"


class FakeLock:
    def __init__(self, lock: threading.Lock, blocking_timeout: float | None):
        self._lock = lock
        self._blocking_timeout = blocking_timeout

    def acquire(self) -> bool:
        timeout = -1 if self._blocking_timeout is None else self._blocking_timeout
        return self._lock.acquire(timeout=timeout)

    def release(self) -> None:
        self._lock.release()


class FakeRedis:
    """In-memory stand-in for the Redis commands the marketplace uses."""

    def __init__(self):
        self.values: dict[str, int] = defaultdict(int)
        self.ttls: dict[str, int] = {}
        self.locks: dict[str, threading.Lock] = defaultdict(threading.Lock)
        self.lock_names: list[str] = []
        self._guard = threading.Lock()

    def incrby(self, key: str, amount: int) -> int:
        with self._guard:
            self.values[key] += amount
            return self.values[key]

    def expire(self, key: str, seconds: int) -> bool:
        self.ttls[key] = seconds
        return True

    def mget(self, keys: list[str]) -> list[str | None]:
        with self._guard:
            return [str(self.values[key]) if key in self.values else None for key in keys]

    def lock(self, name: str, timeout: float | None = None, blocking_timeout: float | None = None) -> FakeLock:
        with self._guard:
            self.lock_names.append(name)
            return FakeLock(self.locks[name], blocking_timeout)


class DeferredExecutor:
    """Executor that only runs submitted work when the test asks for it."""

    def __init__(self):
        self.pending: list[tuple[Future, object, tuple]] = []

    def submit(self, fn, *args) -> Future:
        future = Future()
        self.pending.append((future, fn, args))
        return future

    def run_pending(self) -> None:
        while self.pending:
            future, fn, args = self.pending.pop(0)
            try:
                future.set_result(fn(*args))
            except Exception as exc:
                future.set_exception(exc)

    def shutdown(self, wait: bool = True) -> None:
        self.pending.clear()


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db_session = TestSessionLocal()
    try:
        yield db_session
    finally:
        db_session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def executor() -> DeferredExecutor:
    return DeferredExecutor()


@pytest.fixture
def reconciler(executor: DeferredExecutor) -> TimeoutReconciler:
    return TimeoutReconciler(TestSessionLocal, executor=executor)


@pytest.fixture(scope="function")
def client(db: Session, fake_redis: FakeRedis, reconciler: TimeoutReconciler) -> Generator[TestClient, None, None]:
    """Create a test client with database, redis and reconciler overrides."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: fake_redis
    app.dependency_overrides[get_timeout_reconciler] = lambda: reconciler
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def test_app(db: Session) -> Application:
    application = Application(
        id="Atestapp",
        name="Test App",
        wallet_address=APP_WALLET,
        jwt_public_keys={"es-1": {"algorithm": "HS256", "key": "app-signing-secret"}},
        config={},
    )
    db.add(application)
    db.commit()
    db.refresh(application)
    return application


@pytest.fixture
def test_user(db: Session, test_app: Application) -> User:
    user = User(app_id=test_app.id, app_user_id="user-1", device_id="device-1", wallet_address=WALLET)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def test_user2(db: Session, test_app: Application) -> User:
    user = User(app_id=test_app.id, app_user_id="user-2", device_id="device-2", wallet_address=WALLET)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_offer(db: Session, offer_type: OfferType, amount: int = 10, total: int = 100, per_user: int = 1, **meta) -> Offer:
    offer = Offer(
        name=f"{offer_type.value} offer",
        type=offer_type.value,
        amount=amount,
        cap={"total": total, "per_user": per_user},
        meta={
            "title": meta.get("title", f"{offer_type.value} title"),
            "description": meta.get("description", f"{offer_type.value} description"),
            "order_meta": {
                "title": meta.get("order_title", f"{offer_type.value} order"),
                "description": meta.get("order_description", "thanks"),
                "call_to_action": meta.get("call_to_action"),
                "content": meta.get("content"),
            },
        },
    )
    db.add(offer)
    db.commit()
    db.refresh(offer)
    return offer


@pytest.fixture
def earn_offer(db: Session) -> Offer:
    offer = make_offer(db, OfferType.EARN, amount=10)
    db.add(
        OfferContent(
            offer_id=offer.id,
            content_type="poll",
            content='{"pages": [{"questions": [{"id": "q1"}, {"id": "q2"}]}]}',
        )
    )
    db.commit()
    return offer


@pytest.fixture
def spend_offer(db: Session) -> Offer:
    return make_offer(db, OfferType.SPEND, amount=20, content="coupon-code")


def make_order(
    db: Session,
    user: User,
    offer: Offer,
    status: OrderStatus,
    status_date: datetime | None = None,
    origin: OrderOrigin = OrderOrigin.MARKETPLACE,
) -> Order:
    now = datetime.now(timezone.utc)
    order = Order(
        origin=origin,
        type=offer.type,
        user_id=user.id,
        offer_id=offer.id,
        amount=offer.amount,
        status=status.value,
        meta={"title": "order title", "description": "order description"},
        created_date=(status_date or now) - timedelta(seconds=1),
        current_status_date=None if status == OrderStatus.OPENED else (status_date or now),
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


def make_access_token(app_id: str, app_user_id: str, wallet_address: str | None = WALLET, **claims) -> str:
    payload = {
        "app_id": app_id,
        "sub": app_user_id,
        "device_id": "device-1",
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
        **claims,
    }
    if wallet_address:
        payload["wallet_address"] = wallet_address
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


@pytest.fixture
def auth_headers(test_user: User) -> dict[str, str]:
    token = make_access_token(test_user.app_id, test_user.app_user_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers2(test_user2: User) -> dict[str, str]:
    token = make_access_token(test_user2.app_id, test_user2.app_user_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def ctx(test_user: User) -> RequestContext:
    return RequestContext(
        app_id=test_user.app_id,
        app_user_id=test_user.app_user_id,
        device_id=test_user.device_id,
        user_id=test_user.id,
        wallet_address=test_user.wallet_address,
    )
