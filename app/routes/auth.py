from __future__ import annotations

from flask import Blueprint

from app.routes.common import request_data, rest_handle, rest_token

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login():
    return rest_handle("AUTH_LOGIN", request_data(), message="Login successful")


@auth_bp.post("/register")
def register():
    return rest_handle("AUTH_REGISTER", request_data(), status=201, message="User registered successfully")


@auth_bp.get("/me")
def me():
    return rest_handle("AUTH_ME", request_data())


@auth_bp.put("/profile")
def profile():
    return rest_handle("AUTH_PROFILE_UPDATE", request_data(), message="Profile updated successfully")


@auth_bp.post("/change-password")
def change_password():
    return rest_handle("AUTH_CHANGE_PASSWORD", request_data(), message="Password changed successfully")


@auth_bp.post("/logout")
def logout():
    data = request_data()
    data["_token"] = rest_token()
    return rest_handle("AUTH_LOGOUT", data, message="Logged out successfully")


@auth_bp.get("/verify")
def verify():
    return rest_handle("AUTH_VERIFY", request_data())
