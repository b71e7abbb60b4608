from __future__ import annotations

from flask import Blueprint, request, jsonify, g, abort

from models import storage
from models.user import User
from models.schemas.user import UserCreateSchema, UserOutSchema
from utils.decorators import jwt_required
from utils.security import hash_password

bp = Blueprint("users", __name__, url_prefix="/users")

user_create_schema = UserCreateSchema()
user_out_schema = UserOutSchema()


@bp.post("/register")
def register():
    """
    Register a new user.
    ---
    tags:
      - Users
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            first_name: { type: string }
            last_name: { type: string }
            username: { type: string }
            email: { type: string }
            password: { type: string }
    responses:
      201:
        description: Created
      409:
        description: Email or username already registered
      422:
        description: Validation error
    """
    payload = request.get_json(silent=True) or {}
    data = user_create_schema.load(payload)

    session = storage.get_session()
    if session.query(User.id).filter(User.email == data["email"]).first():
        abort(409, description="Email already registered")
    if session.query(User.id).filter(User.username == data["username"]).first():
        abort(409, description="Username already taken")

    password = data.pop("password")
    user = User(password_hash=hash_password(password), **data)
    storage.new(user)
    storage.save()

    return jsonify({"data": user_out_schema.dump(user)}), 201


@bp.get("/me")
@jwt_required()
def me():
    """
    Get current user info.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Missing bearer token
      403:
        description: Invalid or expired access token
    """
    user = storage.get(User, g.current_user_id)
    if not user:
        abort(404, description="User not found")
    return jsonify({"data": user_out_schema.dump(user)}), 200
