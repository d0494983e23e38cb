"""
api/routes/auth.py -- Session REST endpoints.

Routes:
  POST /signup   -- create an account; 201, no tokens
  POST /login    -- email + password -> access and refresh token
  POST /refresh  -- rotate a refresh token -> new pair; the old one is spent
  POST /logout   -- revoke a refresh token; 204, idempotent
  GET  /me       -- profile of the bearer of a valid access token

Security:
  [H2] POST /login is rate-limited to 10 requests/minute per client address.
  [C1] SessionManager.login() runs bcrypt for unknown emails too and returns
       the same error either way -- never inline the lookup here.
  [M5] Cache-Control: no-store on every response that carries tokens.

Handlers are plain `def`: FastAPI runs them in its threadpool, one worker per
request, and every blocking call below is a store call.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import LoginRequest, MeResponse, MessageResponse, RefreshRequest, SignUpRequest, TokenResponse
from auth.dependencies import get_current_claims
from auth.models import AccessClaims
from auth.sessions import SessionManager

# Auth policy:
# - POST /signup, /login, /refresh: public -- they are how a client gets credentials
# - POST /logout: public -- possession of the refresh token is the authorization
# - GET  /me: requires a valid access token (get_current_claims)
router = APIRouter()


def _sessions(request: Request) -> SessionManager:
    return request.app.state.sessions


def _token_response(body: TokenResponse) -> JSONResponse:
    resp = JSONResponse(status_code=200, content=body.model_dump())
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/signup", response_model=MessageResponse, status_code=201)
def signup(request: Request, body: SignUpRequest) -> MessageResponse:
    """Create a user account. The client must log in separately."""
    _sessions(request).sign_up(body.email, body.password)
    return MessageResponse(message="user created")


@router.post("/login", response_model=TokenResponse)
@limiter.limit("10/minute")  # [H2] innermost, so the route registers the limited wrapper
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a token pair."""
    pair = _sessions(request).login(body.email, body.password)
    return _token_response(TokenResponse.from_pair(pair))


@router.post("/refresh", response_model=TokenResponse)
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Exchange a refresh token for a new pair. Each refresh token works once."""
    pair = _sessions(request).refresh(body.refresh_token)
    return _token_response(TokenResponse.from_pair(pair))


@router.post("/logout", status_code=204)
def logout(request: Request, body: RefreshRequest) -> Response:
    """Revoke a refresh token. Unknown or already-revoked tokens still get 204."""
    _sessions(request).logout(body.refresh_token)
    return Response(status_code=204)


@router.get("/me", response_model=MeResponse)
def me(request: Request, claims: AccessClaims = Depends(get_current_claims)) -> MeResponse:
    """Return the profile of the authenticated user."""
    return MeResponse.from_user(_sessions(request).me(claims.user_id))
