"""
Configuration Module for the Redis Session Demo

This module manages all security and storage configuration parameters.
CRITICAL: Secrets have no defaults. They must come from environment variables.
"""

import os

from exceptions import ConfigurationError


class SecurityConfig:
    """
    Central configuration class for encryption, credentials, tokens and sessions.
    All parameters are class attributes so environments can override by subclassing.
    """

    # ==================== CRYPTOGRAPHIC SETTINGS ====================

    # No fallbacks: require_secrets() refuses to start without these
    ENCRYPTION_KEY = os.getenv('ENCRYPTION_KEY')  # urlsafe base64 of 32 bytes
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY')
    PASSWORD_PEPPER = os.getenv('PASSWORD_PEPPER')

    # Argon2id parameters - memory-hard KDF resistant to GPU attacks
    ARGON2_TIME_COST = 3  # Number of iterations
    ARGON2_MEMORY_COST = 65536  # 64 MB memory usage
    ARGON2_PARALLELISM = 4  # Number of parallel threads
    ARGON2_HASH_LENGTH = 32  # Output hash length in bytes
    ARGON2_SALT_LENGTH = 16  # Salt length in bytes

    # AES-256-GCM encryption settings
    AES_KEY_SIZE = 32  # 256 bits
    AES_NONCE_SIZE = 12  # 96 bits (recommended for GCM)

    # ==================== PASSWORD POLICY ====================

    PASSWORD_MIN_LENGTH = 6

    # ==================== JWT TOKEN SETTINGS ====================

    JWT_ALGORITHM = 'HS256'
    JWT_ISSUER = 'redis-session-demo'
    JWT_AUDIENCE = 'redis-session-demo-users'
    JWT_TOKEN_LIFETIME_SECONDS = 7200  # 2 hours, mirrored by the cookie
    DEFAULT_ROLE = 'user'

    # ==================== STORE NAMESPACES ====================

    USER_PREFIX = 'user:'
    USER_TTL_SECONDS = None  # Accounts are persistent

    TOKEN_SESSION_PREFIX = 'token:'
    TOKEN_SESSION_TTL_SECONDS = 7200  # Sliding, renewed on every validation

    PAYMENT_SESSION_PREFIX = 'session:'
    PAYMENT_SESSION_TTL_SECONDS = 3600

    PAYMENT_CACHE_PREFIX = 'payment:'
    PAYMENT_CACHE_TTL_SECONDS = 1800

    # Session ID entropy - 256 bits
    SESSION_ID_BYTES = 32

    # ==================== COOKIE SECURITY ====================

    COOKIE_NAME = 'auth_token'
    COOKIE_SECURE = True  # HTTPS only - disabled for local dev
    COOKIE_HTTPONLY = True  # Prevent JavaScript access (XSS protection)
    COOKIE_SAMESITE = 'Lax'
    COOKIE_PATH = '/'
    COOKIE_MAX_AGE = JWT_TOKEN_LIFETIME_SECONDS

    # ==================== REDIS SETTINGS ====================

    REDIS_URL = os.getenv('REDIS_URL')  # Takes precedence over host/port
    REDIS_HOST = os.getenv('REDIS_HOST', 'localhost')
    REDIS_PORT = int(os.getenv('REDIS_PORT', '6379'))
    REDIS_USER = os.getenv('REDIS_USER')
    REDIS_PASSWORD = os.getenv('REDIS_PW')
    REDIS_CONNECT_TIMEOUT = 5  # seconds
    REDIS_SOCKET_TIMEOUT = 10  # seconds
    REDIS_MAX_CONNECTIONS = 20

    # ==================== PAYMENT PROCESSOR ====================

    # Simulated external processor
    PAYMENT_PROCESSOR_DELAY_SECONDS = 2.0
    PAYMENT_PROCESSOR_SUCCESS_RATE = 0.9

    # ==================== LOGGING ====================

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    def require_secrets(self) -> None:
        """
        Fail fast when a secret is not configured.
        Called once by the application factory at startup.
        """
        missing = [
            name for name in ('ENCRYPTION_KEY', 'JWT_SECRET_KEY', 'PASSWORD_PEPPER')
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required secret configuration: {', '.join(missing)}"
            )


class DevelopmentConfig(SecurityConfig):
    """Development configuration - allows plain HTTP cookies"""
    COOKIE_SECURE = False
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'DEBUG')


class ProductionConfig(SecurityConfig):
    """Production configuration - maximum security"""
    COOKIE_SECURE = True


# Configuration selector based on environment
def get_config() -> SecurityConfig:
    """
    Returns appropriate configuration based on environment.
    Default to production for safety.
    """
    env = os.getenv('FLASK_ENV', 'production')
    if env == 'development':
        return DevelopmentConfig()
    return ProductionConfig()


# Export the active configuration
settings = get_config()
