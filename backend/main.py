import logging
import math
import os
import sys
from pathlib import Path
from typing import Optional

from fastapi import Cookie, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
import psycopg2
from dotenv import load_dotenv
from jose import JWTError, jwt

_project_root = Path(__file__).resolve().parents[1]
if str(_project_root) not in sys.path:
    sys.path.append(str(_project_root))

try:
    from backend.app.payments import EmployerAccount, PostgresPaymentRepository
    from backend.app.routes.invoices import router as invoices_router
    from backend.app.routes.payments import router as payments_router
except ModuleNotFoundError as exc:
    if exc.name != "backend":
        raise
    from app.payments import EmployerAccount, PostgresPaymentRepository  # type: ignore[no-redef]
    from app.routes.invoices import router as invoices_router  # type: ignore[no-redef]
    from app.routes.payments import router as payments_router  # type: ignore[no-redef]


load_dotenv()

def _parse_connect_timeout(raw_value: str) -> int:
    try:
        timeout = float(raw_value)
    except ValueError as exc:
        raise ValueError("DB_CONNECT_TIMEOUT must be a number") from exc
    if timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(timeout))

DB_CFG = dict(
    host=os.getenv("DB_HOST", "127.0.0.1"),
    port=int(os.getenv("DB_PORT", "5432")),
    dbname=os.getenv("DB_NAME", "jobzee"),
    user=os.getenv("DB_USER", "jobzee"),
    password=os.getenv("DB_PASSWORD", "jobzee"),
    connect_timeout=_parse_connect_timeout(os.getenv("DB_CONNECT_TIMEOUT", "5")),
)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-change-me")
JWT_ALGORITHM = "HS256"
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")
EMPLOYER_ROLE = "employer"
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]

logger = logging.getLogger("billing")
logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())


def get_conn():
    return psycopg2.connect(**DB_CFG)


def resolve_employer_from_session_token(session_token: str) -> Optional[EmployerAccount]:
    try:
        payload = jwt.decode(session_token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None

    subject = payload.get("sub")
    if not subject:
        return None
    role = payload.get("role")
    if role is not None and role != EMPLOYER_ROLE:
        return None

    return PostgresPaymentRepository().get_employer(str(subject))


def get_current_employer(
    session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
) -> EmployerAccount:
    if not session_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    employer = resolve_employer_from_session_token(session_token)
    if employer is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return employer


app = FastAPI(title="JobZee Payments API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(payments_router)
app.include_router(invoices_router)


@app.get("/api/health")
def health() -> dict:
    return {"status": "ok"}


try:
    from backend import app_context
except ModuleNotFoundError as exc:
    if exc.name != "backend":
        raise
    import app_context  # type: ignore[no-redef]

app_context.configure(
    get_conn=get_conn,
    get_current_employer=get_current_employer,
)
