"""
Google sign-in and session tokens.

Sign-in is a standard OAuth authorization-code exchange with Google. After
that the session is a signed JWT; the rest of the app only reads the email
claim from it.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode

import jwt
import requests

from config import Config
from errors import InvalidInput, Unauthorized, VoiceTodoError

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_PROVIDER = "google"


def create_jwt_token(user_id: str, email: str, config=Config) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "exp": now + timedelta(hours=config.JWT_EXPIRATION_HOURS),
        "iat": now
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_jwt_token(token: str, config=Config) -> dict:
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token has expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid token")
    if not payload.get("email"):
        raise Unauthorized("Invalid token")
    return payload


def google_auth_url(redirect_uri: Optional[str] = None, config=Config) -> str:
    if not config.GOOGLE_CLIENT_ID:
        raise VoiceTodoError("Google OAuth not configured")

    params = {
        "client_id": config.GOOGLE_CLIENT_ID,
        "redirect_uri": redirect_uri or config.GOOGLE_AUTH_REDIRECT_URI,
        "response_type": "code",
        "scope": "openid email profile",
        "access_type": "offline",
        "prompt": "consent"
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


def exchange_google_code(code: str, redirect_uri: Optional[str] = None, config=Config) -> dict:
    """
    Exchange an authorization code for the Google profile of the signed-in user.

    Returns:
        {"id": str, "email": str, "name": str, "picture": Optional[str]}

    Raises:
        VoiceTodoError: If Google OAuth is not configured (500)
        InvalidInput: If Google rejects the code or the profile has no email (400)
    """
    if not config.GOOGLE_CLIENT_ID or not config.GOOGLE_CLIENT_SECRET:
        raise VoiceTodoError("Google OAuth not configured")

    token_response = requests.post(
        GOOGLE_TOKEN_URL,
        data={
            "client_id": config.GOOGLE_CLIENT_ID,
            "client_secret": config.GOOGLE_CLIENT_SECRET,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri or config.GOOGLE_AUTH_REDIRECT_URI
        }
    )
    if token_response.status_code != 200:
        logger.error(f"Google token exchange failed: {token_response.text}")
        raise InvalidInput("Failed to authenticate with Google")

    access_token = token_response.json().get("access_token")
    user_info_response = requests.get(
        GOOGLE_USERINFO_URL,
        headers={"Authorization": f"Bearer {access_token}"}
    )
    if user_info_response.status_code != 200:
        raise InvalidInput("Failed to get user info from Google")

    profile = user_info_response.json()
    if not profile.get("email") or not profile.get("id"):
        raise InvalidInput("Google account has no email address")
    return {
        "id": str(profile["id"]),
        "email": profile["email"].lower(),
        "name": profile.get("name", ""),
        "picture": profile.get("picture"),
    }
