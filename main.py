import logging
from typing import Optional

from flask import Flask, request, jsonify, make_response

from auth import AccountRegistry
from config import SecurityConfig, settings
from crypto import CryptoManager, PasswordManager
from exceptions import AuthError, NoActiveToken
from payment import PaymentService, PaymentSessionManager, SimulatedPaymentProcessor
from session import SessionManager
from store import EncryptedNamespace, KeyValueStore, create_redis_client_from_config
from tokens import TokenService

logger = logging.getLogger(__name__)


def create_app(config: Optional[SecurityConfig] = None, redis_client=None,
               processor=None) -> Flask:
    """
    Application factory. Fails at startup when a secret is missing.
    The Redis client is created once here and shared by every component.
    """
    config = config or settings
    config.require_secrets()
    logging.basicConfig(level=config.LOG_LEVEL)

    # --- SETUP ---
    crypto = CryptoManager(config.ENCRYPTION_KEY)
    passwords = PasswordManager(
        config.PASSWORD_PEPPER,
        time_cost=config.ARGON2_TIME_COST,
        memory_cost=config.ARGON2_MEMORY_COST,
        parallelism=config.ARGON2_PARALLELISM,
        hash_len=config.ARGON2_HASH_LENGTH,
        salt_len=config.ARGON2_SALT_LENGTH,
    )
    tokens = TokenService(
        config.JWT_SECRET_KEY,
        issuer=config.JWT_ISSUER,
        audience=config.JWT_AUDIENCE,
        algorithm=config.JWT_ALGORITHM,
        ttl=config.JWT_TOKEN_LIFETIME_SECONDS,
    )
    store = KeyValueStore(redis_client if redis_client is not None
                          else create_redis_client_from_config(config))

    accounts = AccountRegistry(
        EncryptedNamespace(store, crypto, config.USER_PREFIX, config.USER_TTL_SECONDS),
        passwords,
        min_password_length=config.PASSWORD_MIN_LENGTH,
        default_role=config.DEFAULT_ROLE,
    )
    sessions = SessionManager(
        EncryptedNamespace(store, crypto, config.TOKEN_SESSION_PREFIX, config.TOKEN_SESSION_TTL_SECONDS),
        tokens,
        session_id_bytes=config.SESSION_ID_BYTES,
    )
    payments = PaymentService(
        PaymentSessionManager(
            EncryptedNamespace(store, crypto, config.PAYMENT_SESSION_PREFIX, config.PAYMENT_SESSION_TTL_SECONDS),
            EncryptedNamespace(store, crypto, config.PAYMENT_CACHE_PREFIX, config.PAYMENT_CACHE_TTL_SECONDS),
        ),
        processor or SimulatedPaymentProcessor(
            delay=config.PAYMENT_PROCESSOR_DELAY_SECONDS,
            success_rate=config.PAYMENT_PROCESSOR_SUCCESS_RATE,
        ),
    )

    app = Flask(__name__)
    app.extensions['accounts'] = accounts
    app.extensions['sessions'] = sessions
    app.extensions['payments'] = payments
    app.extensions['store'] = store

    # --- MIDDLEWARE / HELPERS ---

    def get_token() -> Optional[str]:
        """Authorization header first, then the auth cookie"""
        header = request.headers.get('Authorization', '')
        if header.startswith('Bearer '):
            return header[len('Bearer '):].strip() or None
        return request.cookies.get(config.COOKIE_NAME)

    def set_token_cookie(resp, token: str):
        resp.set_cookie(
            config.COOKIE_NAME, token,
            httponly=config.COOKIE_HTTPONLY,
            secure=config.COOKIE_SECURE,
            samesite=config.COOKIE_SAMESITE,
            max_age=config.COOKIE_MAX_AGE,
            path=config.COOKIE_PATH,
        )
        return resp

    def form() -> dict:
        """JSON object body or form fields; any other JSON shape reads as empty"""
        data = request.get_json(silent=True)
        if data is None:
            return request.form.to_dict()
        return data if isinstance(data, dict) else {}

    def failure(e: AuthError):
        return jsonify({"error": e.message}), e.status_code

    def unexpected(action: str):
        logger.exception(f"{action} error")
        return jsonify({"error": f"{action} failed. Please try again."}), 500

    @app.after_request
    def add_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Content-Security-Policy'] = "default-src 'self'"
        response.headers['Cache-Control'] = 'no-store'
        return response

    # --- ROUTES: ACCOUNTS & TOKENS ---

    @app.route('/register', methods=['POST'])
    def register():
        data = form()
        try:
            user = accounts.register(data.get('username'), data.get('password'), data.get('email'))
            return jsonify({"success": True, "user": user.to_dict(),
                            "message": "User registered successfully"}), 201
        except AuthError as e:
            return failure(e)
        except Exception:
            return unexpected("Registration")

    @app.route('/login', methods=['POST'])
    def login():
        data = form()
        try:
            user = accounts.authenticate(data.get('username'), data.get('password'))
            _, token = sessions.start_session(user)

            resp = make_response(jsonify({
                "success": True,
                "user": user.to_dict(),
                "token": token,
                "message": "Login successful",
            }))
            return set_token_cookie(resp, token)
        except AuthError as e:
            return failure(e)
        except Exception:
            return unexpected("Login")

    @app.route('/logout', methods=['POST'])
    def logout():
        try:
            token = get_token()
            if token:
                sessions.end_session(sessions.session_id_from_token(token))
            resp = make_response(jsonify({"success": True, "message": "Logged out successfully"}))
            resp.delete_cookie(config.COOKIE_NAME, path=config.COOKIE_PATH)
            return resp
        except AuthError as e:
            return failure(e)
        except Exception:
            return unexpected("Logout")

    @app.route('/me', methods=['GET'])
    def current_user():
        try:
            user = sessions.validate(get_token())
            return jsonify({"user": user.to_dict() if user else None})
        except AuthError as e:
            return failure(e)
        except Exception:
            return unexpected("Session lookup")

    @app.route('/token/validate', methods=['POST'])
    def validate_token():
        try:
            token = form().get('token') or get_token()
            user = sessions.validate(token)
            return jsonify({"valid": user is not None, "user": user.to_dict() if user else None})
        except AuthError as e:
            return failure(e)
        except Exception:
            return unexpected("Token validation")

    @app.route('/token/refresh', methods=['POST'])
    def refresh_token():
        try:
            token = get_token()
            if not token:
                raise NoActiveToken()
            new_token = sessions.refresh(token)
            resp = make_response(jsonify({
                "success": True,
                "token": new_token,
                "message": "Token refreshed successfully",
            }))
            return set_token_cookie(resp, new_token)
        except AuthError as e:
            return failure(e)
        except Exception:
            return unexpected("Token refresh")

    @app.route('/users/<username>', methods=['GET'])
    def user_profile(username):
        try:
            user = accounts.lookup(username)
            return jsonify({"user": user.to_dict() if user else None})
        except AuthError as e:
            return failure(e)
        except Exception:
            return unexpected("Profile lookup")

    # --- ROUTES: PAYMENTS ---

    @app.route('/payment/init', methods=['POST'])
    def initialize_payment():
        data = form()
        try:
            session_id = payments.initialize_payment(
                data.get('amount'), data.get('currency'), data.get('description'))
            return jsonify({"success": True, "session_id": session_id,
                            "message": "Payment session initialized"}), 201
        except AuthError as e:
            return failure(e)
        except Exception:
            return unexpected("Payment initialization")

    @app.route('/payment/process', methods=['POST'])
    def process_payment():
        data = form()
        try:
            return jsonify(payments.process_payment(data.get('session_id'), data))
        except AuthError as e:
            return failure(e)
        except Exception:
            return unexpected("Payment processing")

    @app.route('/payment/<session_id>', methods=['GET'])
    def payment_status(session_id):
        try:
            return jsonify(payments.get_payment_status(session_id))
        except AuthError as e:
            return failure(e)
        except Exception:
            return unexpected("Payment status")

    @app.route('/payment/<session_id>', methods=['DELETE'])
    def clear_payment(session_id):
        try:
            payments.clear_session(session_id)
            return jsonify({"success": True, "message": "Session cleared"})
        except AuthError as e:
            return failure(e)
        except Exception:
            return unexpected("Session clear")

    @app.route('/health', methods=['GET'])
    def health():
        try:
            store.ping()
            return jsonify({"status": "ok"})
        except AuthError as e:
            return failure(e)

    return app


if __name__ == "__main__":
    # In production, run with Gunicorn + TLS termination
    create_app().run(debug=False)
