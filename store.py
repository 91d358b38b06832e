"""
Redis-backed key-value store

One client (with its own connection pool) is created at process start and
injected everywhere. Per-key Redis commands are atomic; anything needing
"exactly one writer" goes through set_if_absent (SET NX).
"""

import json
import logging
from typing import Any, Dict, Optional

import redis
from redis.exceptions import RedisError

from crypto import CryptoManager
from exceptions import DecryptionError, StoreUnavailable

logger = logging.getLogger(__name__)


def create_redis_client(
    redis_url: Optional[str] = None,
    host: str = 'localhost',
    port: int = 6379,
    username: Optional[str] = None,
    password: Optional[str] = None,
    **kwargs
) -> redis.Redis:
    """
    Create a Redis client with connection pooling and bounded timeouts.

    Args:
        redis_url: Complete Redis URL (takes precedence)
        host: Redis host
        port: Redis port
        username: ACL user
        password: Redis password
        **kwargs: Additional Redis client parameters

    Returns:
        Configured Redis client (no connection is opened until first command)
    """
    pool_kwargs = {
        'max_connections': kwargs.pop('max_connections', 20),
        'socket_connect_timeout': kwargs.pop('socket_connect_timeout', 5),
        'socket_timeout': kwargs.pop('socket_timeout', 10),
        'decode_responses': True,
    }

    if redis_url:
        client = redis.Redis.from_url(redis_url, **pool_kwargs, **kwargs)
        logger.info("Redis client created from URL")
    else:
        client = redis.Redis(
            host=host,
            port=port,
            username=username,
            password=password,
            **pool_kwargs,
            **kwargs
        )
        logger.info(f"Redis client created: {host}:{port} (auth: {'yes' if password else 'no'})")
    return client


def create_redis_client_from_config(config) -> redis.Redis:
    return create_redis_client(
        redis_url=config.REDIS_URL,
        host=config.REDIS_HOST,
        port=config.REDIS_PORT,
        username=config.REDIS_USER,
        password=config.REDIS_PASSWORD,
        max_connections=config.REDIS_MAX_CONNECTIONS,
        socket_connect_timeout=config.REDIS_CONNECT_TIMEOUT,
        socket_timeout=config.REDIS_SOCKET_TIMEOUT,
    )


class KeyValueStore:
    """Thin wrapper translating Redis failures into StoreUnavailable. No retries."""

    def __init__(self, client: redis.Redis):
        self.client = client

    def _fail(self, operation: str, key: str, error: Exception):
        logger.error(f"Redis {operation} failed for key {key}: {error}")
        raise StoreUnavailable() from error

    def get(self, key: str) -> Optional[str]:
        try:
            return self.client.get(key)
        except RedisError as e:
            self._fail('get', key, e)

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        try:
            self.client.set(key, value, ex=ttl)
        except RedisError as e:
            self._fail('set', key, e)

    def set_if_absent(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """Atomic create. Returns False when the key already exists."""
        try:
            return bool(self.client.set(key, value, ex=ttl, nx=True))
        except RedisError as e:
            self._fail('set_if_absent', key, e)

    def delete(self, key: str) -> bool:
        try:
            return self.client.delete(key) > 0
        except RedisError as e:
            self._fail('delete', key, e)

    def exists(self, key: str) -> bool:
        try:
            return self.client.exists(key) > 0
        except RedisError as e:
            self._fail('exists', key, e)

    def ttl(self, key: str) -> int:
        """Seconds left; -1 when persistent, -2 when missing (Redis semantics)"""
        try:
            return self.client.ttl(key)
        except RedisError as e:
            self._fail('ttl', key, e)

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except RedisError as e:
            self._fail('ping', '-', e)


class EncryptedNamespace:
    """
    JSON records under one key prefix, encrypted at rest.
    The full key is bound as GCM associated data, so a record copied
    under another key no longer decrypts.
    """

    def __init__(self, store: KeyValueStore, crypto: CryptoManager, prefix: str,
                 ttl: Optional[int] = None):
        self.store = store
        self.crypto = crypto
        self.prefix = prefix
        self.ttl = ttl

    def key_for(self, ident: str) -> str:
        return f"{self.prefix}{ident}"

    def _seal(self, key: str, record: Dict[str, Any]) -> str:
        return self.crypto.encrypt(json.dumps(record), associated_data=key.encode())

    def load(self, ident: str) -> Optional[Dict[str, Any]]:
        """
        Returns None when absent. Raises DecryptionError when the stored
        envelope is unusable; the caller decides how to surface that.
        """
        key = self.key_for(ident)
        envelope = self.store.get(key)
        if envelope is None:
            return None
        plaintext = self.crypto.decrypt(envelope, associated_data=key.encode())
        try:
            return json.loads(plaintext)
        except ValueError:
            raise DecryptionError()

    def save(self, ident: str, record: Dict[str, Any]) -> None:
        """Overwrite and restart the namespace TTL (none for persistent namespaces)"""
        key = self.key_for(ident)
        self.store.set(key, self._seal(key, record), ttl=self.ttl)

    def create(self, ident: str, record: Dict[str, Any]) -> bool:
        key = self.key_for(ident)
        return self.store.set_if_absent(key, self._seal(key, record), ttl=self.ttl)

    def delete(self, ident: str) -> bool:
        return self.store.delete(self.key_for(ident))

    def exists(self, ident: str) -> bool:
        return self.store.exists(self.key_for(ident))
