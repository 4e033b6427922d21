from fastapi import FastAPI, APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import time
from typing import List, Optional

from config import Config, parse_cors_origins, validate_required_env_vars
from errors import InvalidInput, NotFound, Unauthorized, VoiceTodoError
from schemas import (
    AuthResponse, ExtractedTask, GoogleAuthRequest, Todo, TodoCreate, TodoUpdate,
    TranscribeRequest, User, UserPublic,
)
from auth import GOOGLE_PROVIDER, create_jwt_token, decode_jwt_token, exchange_google_code, google_auth_url
from todo_store import OwnedTodos, TodoStore, create_store
from llm.gateway import ModelGateway, create_model_gateway
from transcription import transcribe_data_uri
from task_extraction import extract_tasks

ENV = Config.ENV

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Validate required environment variables at startup
validate_required_env_vars()

store = create_store(Config)
model_gateway = create_model_gateway(Config)


def get_store() -> TodoStore:
    return store


def get_model_gateway() -> ModelGateway:
    return model_gateway


# Docs at /api/docs in development, disabled in production
if ENV == 'production':
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
else:
    app = FastAPI(docs_url="/api/docs", redoc_url="/api/redoc", openapi_url="/api/openapi.json")

# CORS middleware - must be added before routes are defined
cors_origins, allow_creds = parse_cors_origins(Config.CORS_ORIGINS)
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=allow_creds,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["authorization", "content-type", "accept", "origin", "x-requested-with"],
    max_age=600,  # Cache preflight for 10 minutes
)

# Request logging middleware (dev only) - after CORS middleware
if ENV != 'production':
    @app.middleware("http")
    async def log_requests(request, call_next):
        """Log all requests in development mode"""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        logger.info(
            f"{request.method} {request.url.path} → {response.status_code} "
            f"({process_time:.3f}s)"
        )
        return response


# ============ ERROR HANDLERS ============
# Every failure leaves the API as {"error": "<message>"}
@app.exception_handler(VoiceTodoError)
async def voice_todo_error_handler(request: Request, exc: VoiceTodoError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    detail = "Invalid request body"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = f"Invalid request body: {location}: {first.get('msg')}" if location else f"Invalid request body: {first.get('msg')}"
    return JSONResponse(status_code=400, content={"error": detail})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Create a router with the /api prefix
api_router = APIRouter(prefix="/api")

# HTTP Bearer for JWT
security = HTTPBearer(auto_error=False)


# ============ AUTH DEPENDENCIES ============
async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    store: TodoStore = Depends(get_store),
) -> User:
    if not credentials:
        raise Unauthorized()
    payload = decode_jwt_token(credentials.credentials)
    user = await store.get_user_by_email(payload["email"])
    if not user:
        raise NotFound("User not found")
    return user


async def get_owned_todos(
    user: User = Depends(get_current_user),
    store: TodoStore = Depends(get_store),
) -> OwnedTodos:
    """The only way handlers reach todos: scoped to the authenticated user."""
    return store.for_owner(user.id)


def to_public(user: User) -> UserPublic:
    return UserPublic(id=user.id, email=user.email, name=user.name, image=user.image)


@api_router.get("/")
async def root():
    return {"message": "Voice Todo API"}


@api_router.get("/health")
async def health():
    return {"status": "healthy"}


# ============ AUTH ROUTES ============
@api_router.get("/auth/google/url")
async def get_google_auth_url(redirect_uri: Optional[str] = None):
    """Get Google OAuth URL for login"""
    return {"url": google_auth_url(redirect_uri)}


@api_router.post("/auth/google", response_model=AuthResponse)
async def google_auth(auth_data: GoogleAuthRequest, store: TodoStore = Depends(get_store)):
    """Exchange Google auth code for a session token"""
    profile = await run_in_threadpool(exchange_google_code, auth_data.code, auth_data.redirect_uri)
    user = await store.upsert_oauth_user(
        email=profile["email"],
        name=profile["name"],
        image=profile["picture"],
        provider=GOOGLE_PROVIDER,
        provider_account_id=profile["id"],
    )
    logger.info(f"Signed in user {user.id} via {GOOGLE_PROVIDER}")
    return AuthResponse(token=create_jwt_token(user.id, user.email), user=to_public(user))


@api_router.get("/auth/me", response_model=UserPublic)
async def get_me(user: User = Depends(get_current_user)):
    """Get current authenticated user"""
    return to_public(user)


# ============ TODO ROUTES ============
@api_router.get("/todos", response_model=List[Todo])
async def list_todos(todos: OwnedTodos = Depends(get_owned_todos)):
    return await todos.list()


@api_router.post("/todos", response_model=Todo)
async def create_todo(todo_input: TodoCreate, todos: OwnedTodos = Depends(get_owned_todos)):
    return await todos.create(todo_input.title, todo_input.estimated_time, todo_input.created_at)


@api_router.patch("/todos/{todo_id}", response_model=Todo)
async def update_todo(todo_id: int, todo_update: TodoUpdate, todos: OwnedTodos = Depends(get_owned_todos)):
    update_data = todo_update.model_dump(exclude_none=True)
    if not update_data:
        raise InvalidInput("No update data provided")
    logger.info(f"[update_todo] todo_id={todo_id}, user_id={todos.owner_id}, keys={list(update_data.keys())}")
    return await todos.update(todo_id, update_data)


@api_router.delete("/todos/{todo_id}")
async def delete_todo(todo_id: int, todos: OwnedTodos = Depends(get_owned_todos)):
    logger.info(f"Delete todo request: todo_id={todo_id}, user_id={todos.owner_id}")
    await todos.delete(todo_id)
    return {"success": True}


# ============ VOICE PIPELINE ============
@api_router.post("/transcribe", response_model=List[ExtractedTask])
async def transcribe_audio_endpoint(
    body: TranscribeRequest,
    user: User = Depends(get_current_user),
    gateway: ModelGateway = Depends(get_model_gateway),
):
    """Transcribe recorded audio and split it into timed tasks (not saved)"""
    logger.info(f"Transcribe request from user_id={user.id}")
    transcript = await transcribe_data_uri(gateway, body.audio)
    return await extract_tasks(gateway, transcript)


app.include_router(api_router)


# Root redirect to API docs in development
@app.get("/")
async def index():
    """Redirect root to API documentation"""
    if ENV == 'production':
        return {"message": "Voice Todo API", "docs": "API documentation is disabled in production"}
    return RedirectResponse(url="/api/docs")


@app.on_event("shutdown")
async def shutdown_store():
    await store.close()
