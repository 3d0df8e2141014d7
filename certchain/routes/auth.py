from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import create_access_token, jwt_required, get_jwt_identity, get_jwt, verify_jwt_in_request
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError
from sqlalchemy import func
from certchain.models import db, User, TokenBlocklist
from datetime import datetime, timezone
from functools import wraps

auth_bp = Blueprint("auth", __name__)


def roles_required(*roles):
    """Verifies the caller's role from the JWT claims."""
    def wrapper(fn):
        @wraps(fn)
        @jwt_required()
        def decorator(*args, **kwargs):
            claims = get_jwt()
            if claims.get("role") not in roles:
                return jsonify(error="Forbidden", message=f"Required role: {', '.join(roles)}"), 403
            return fn(*args, **kwargs)
        return decorator
    return wrapper


def current_username():
    """Username of the caller if a valid token was sent, otherwise None (guest)."""
    try:
        verify_jwt_in_request(optional=True)
    except (JWTExtendedException, PyJWTError) as e:
        # Expired, revoked or malformed tokens fall back to a guest caller.
        current_app.logger.warning(f"Ignoring unusable access token: {e}")
        return None
    return get_jwt_identity()


def find_user(username):
    return User.query.filter(func.lower(User.username) == (username or "").strip().lower()).first()


@auth_bp.route("/login", methods=["POST"])
def login():
    """Handles user login and returns a JWT access token."""
    data = request.get_json(silent=True) or {}
    username = (data.get("username") or "").strip()
    password = data.get("password")

    if not username or not password:
        return jsonify(error="Bad Request", message="Username and password are required."), 400

    user = find_user(username)

    if user and user.check_password(password):
        user.login_count = (user.login_count or 0) + 1
        db.session.commit()
        access_token = create_access_token(identity=user.username, additional_claims={"role": user.role.value})
        return jsonify(access_token=access_token, user=user.to_dict())

    return jsonify(error="Unauthorized", message="Bad username or password."), 401


@auth_bp.route('/logout', methods=['POST'])
@jwt_required()
def logout():
    """Handles user logout by blocklisting the current token."""
    jti = get_jwt()['jti']
    now = datetime.now(timezone.utc)
    db.session.add(TokenBlocklist(jti=jti, created_at=now))
    db.session.commit()
    return jsonify(msg="Access token revoked successfully")


@auth_bp.route('/profile', methods=['GET'])
@jwt_required()
def profile():
    """Returns the profile information of the currently logged-in user."""
    user = find_user(get_jwt_identity())

    if not user:
        return jsonify(error="Not Found", message="User not found"), 404

    return jsonify(user.to_dict())
