"""Test configuration and fixtures."""

import threading

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from auth import AccountRegistry
from config import DevelopmentConfig, ProductionConfig
from crypto import CryptoManager, PasswordManager
from payment import PaymentService, PaymentSessionManager, SimulatedPaymentProcessor
from session import SessionManager
from store import EncryptedNamespace, KeyValueStore
from tokens import TokenService

TEST_ENCRYPTION_KEY = CryptoManager.generate_key()
TEST_JWT_SECRET = "test-jwt-secret-for-testing-only"
TEST_PEPPER = "test-pepper"

# Cheap Argon2 parameters keep the suite fast
FAST_ARGON2 = dict(time_cost=1, memory_cost=1024, parallelism=1)


class FakeRedis:
    """
    In-memory stand-in for redis.Redis (decode_responses=True) covering the
    commands the store uses. Time only moves through advance().
    """

    def __init__(self):
        self.data = {}
        self.expiry = {}
        self.now = 0.0
        self._lock = threading.Lock()

    def advance(self, seconds):
        self.now += seconds

    def _purge(self, key):
        deadline = self.expiry.get(key)
        if deadline is not None and deadline <= self.now:
            self.data.pop(key, None)
            self.expiry.pop(key, None)

    def get(self, key):
        with self._lock:
            self._purge(key)
            return self.data.get(key)

    def set(self, key, value, ex=None, nx=False):
        with self._lock:
            self._purge(key)
            if nx and key in self.data:
                return None
            self.data[key] = value
            if ex is not None:
                self.expiry[key] = self.now + ex
            else:
                self.expiry.pop(key, None)
            return True

    def delete(self, *keys):
        removed = 0
        with self._lock:
            for key in keys:
                self._purge(key)
                if key in self.data:
                    del self.data[key]
                    self.expiry.pop(key, None)
                    removed += 1
        return removed

    def exists(self, *keys):
        with self._lock:
            for key in keys:
                self._purge(key)
            return sum(1 for key in keys if key in self.data)

    def ttl(self, key):
        with self._lock:
            self._purge(key)
            if key not in self.data:
                return -2
            if key not in self.expiry:
                return -1
            return int(round(self.expiry[key] - self.now))

    def ping(self):
        return True


class BrokenRedis:
    """Every command fails the way redis-py does when the server is gone"""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise RedisConnectionError("Connection refused")
        return fail


class DevelopmentConfigForTests(DevelopmentConfig):
    ENCRYPTION_KEY = TEST_ENCRYPTION_KEY
    JWT_SECRET_KEY = TEST_JWT_SECRET
    PASSWORD_PEPPER = TEST_PEPPER
    ARGON2_TIME_COST = 1
    ARGON2_MEMORY_COST = 1024
    ARGON2_PARALLELISM = 1
    LOG_LEVEL = 'WARNING'


class ProductionConfigForTests(ProductionConfig):
    ENCRYPTION_KEY = TEST_ENCRYPTION_KEY
    JWT_SECRET_KEY = TEST_JWT_SECRET
    PASSWORD_PEPPER = TEST_PEPPER
    ARGON2_TIME_COST = 1
    ARGON2_MEMORY_COST = 1024
    ARGON2_PARALLELISM = 1
    LOG_LEVEL = 'WARNING'


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def store(fake_redis):
    return KeyValueStore(fake_redis)


@pytest.fixture
def crypto():
    return CryptoManager(TEST_ENCRYPTION_KEY)


@pytest.fixture
def passwords():
    return PasswordManager(TEST_PEPPER, **FAST_ARGON2)


@pytest.fixture
def tokens():
    return TokenService(TEST_JWT_SECRET, issuer="redis-session-demo",
                        audience="redis-session-demo-users", ttl=7200)


@pytest.fixture
def registry(store, crypto, passwords):
    return AccountRegistry(EncryptedNamespace(store, crypto, "user:"), passwords)


@pytest.fixture
def session_manager(store, crypto, tokens):
    return SessionManager(EncryptedNamespace(store, crypto, "token:", 7200), tokens)


@pytest.fixture
def payment_manager(store, crypto):
    return PaymentSessionManager(
        EncryptedNamespace(store, crypto, "session:", 3600),
        EncryptedNamespace(store, crypto, "payment:", 1800),
    )


@pytest.fixture
def approving_processor():
    return SimulatedPaymentProcessor(delay=0, success_rate=1.0)


@pytest.fixture
def payment_service(payment_manager, approving_processor):
    return PaymentService(payment_manager, approving_processor)


@pytest.fixture
def app(fake_redis, approving_processor):
    from main import create_app

    app = create_app(DevelopmentConfigForTests(), redis_client=fake_redis, processor=approving_processor)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
