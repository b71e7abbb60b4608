"""
Authentication blueprint:
- POST /auth/login
- POST /auth/refresh
- POST /auth/logout

The refresh token travels only in an HttpOnly, SameSite=Strict cookie; JSON
bodies carry the access token alone. All protocol decisions (rotation, reuse
detection, revocation) are made by the SessionService kept in
``app.extensions["session_service"]``; this module maps them onto cookies
and status codes.
"""
from __future__ import annotations

from flask import Blueprint, request, jsonify, current_app

from models.schemas.user import UserLoginSchema
from services.errors import Forbidden
from services.rotation import SessionService

from .errors import auth_error_response

bp = Blueprint("auth", __name__, url_prefix="/auth")

user_login_schema = UserLoginSchema()


def get_session_service() -> SessionService:
    return current_app.extensions["session_service"]


def _cookie_name() -> str:
    return current_app.config["REFRESH_COOKIE_NAME"]


def set_refresh_cookie(response, refresh_token: str):
    response.set_cookie(
        _cookie_name(),
        refresh_token,
        max_age=int(current_app.config["REFRESH_TOKEN_EXPIRES"].total_seconds()),
        httponly=True,
        samesite="Strict",
        secure=current_app.config["REFRESH_COOKIE_SECURE"],
        path="/",
    )
    return response


def clear_refresh_cookie(response):
    response.delete_cookie(
        _cookie_name(),
        httponly=True,
        samesite="Strict",
        secure=current_app.config["REFRESH_COOKIE_SECURE"],
        path="/",
    )
    return response


@bp.post("/login")
def login():
    """
    Login: returns an access token and sets the refresh token cookie
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns accessToken, sets refresh cookie)
      401:
        description: Invalid credentials
      422:
        description: Validation error
    """
    payload = request.get_json(silent=True) or {}
    data = user_login_schema.load(payload)
    old_refresh_token = request.cookies.get(_cookie_name())

    result = get_session_service().login(data["email"], data["password"], old_refresh_token)

    response = jsonify({"accessToken": result.access_token})
    if result.should_clear_old_cookie:
        clear_refresh_cookie(response)
    set_refresh_cookie(response, result.refresh_token)
    return response, 200


@bp.post("/refresh")
def refresh():
    """
    Rotate the refresh token cookie and return a new access token
    ---
    tags:
      - Auth
    responses:
      200:
        description: OK (returns accessToken, sets a new refresh cookie)
      401:
        description: No refresh token cookie
      403:
        description: Refresh token rejected
    """
    token = request.cookies.get(_cookie_name())
    try:
        result = get_session_service().refresh(token)
    except Forbidden as err:
        response, status = auth_error_response(err)
        clear_refresh_cookie(response)
        return response, status

    response = jsonify({"accessToken": result.access_token})
    set_refresh_cookie(response, result.refresh_token)
    return response, 200


@bp.post("/logout")
def logout():
    """
    Logout: invalidates the refresh token of this device
    ---
    tags:
      - Auth
    responses:
      204:
        description: Logged out (idempotent)
    """
    token = request.cookies.get(_cookie_name())
    get_session_service().logout(token)

    response = current_app.response_class(status=204)
    if token:
        clear_refresh_cookie(response)
    return response
