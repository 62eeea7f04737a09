# FixMyTown: Municipal Civic Complaint Tracker
# FastAPI + MongoDB

import asyncio
import logging
from contextlib import asynccontextmanager
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from pymongo import MongoClient
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from civic import permissions
from civic.analytics import ComplaintAnalytics
from civic.assignment import AssignmentResolver
from civic.config import (
    CORS_ORIGINS, INITIAL_STATUS, JWT_ALGORITHM, JWT_EXPIRE_HOURS, JWT_SECRET,
    MONGODB_DB, MONGODB_URL, OTP_DEMO_CODE, OTP_DEMO_MODE, OTP_TTL_MINUTES,
    SEED_ON_STARTUP, STATUS_TRANSITIONS, TREND_MODE,
)
from civic.errors import TrackerError, ValidationError
from civic.identity import OtpService, UserDirectory, public_user
from civic.lifecycle import TransitionPolicy, now_utc
from civic.models import (
    STAFF_ROLES, Assignment, Category, CategoryStatsEnvelope, CitizenAction,
    CitizenCreate, CommentCreate, CommentListEnvelope, ComplaintCreate,
    ComplaintEnvelope, ComplaintFilter, ComplaintListEnvelope, ComplaintStatus,
    ComplaintUpdate, DeleteEnvelope, DepartmentStatsEnvelope, LoginEnvelope,
    OtpRequest, OtpSentEnvelope, OtpVerify, Priority, Reassignment, StaffLogin,
    StatsResponse, TrendBucket, TrendEnvelope, TrendMode, UserEnvelope,
    UserListEnvelope,
)
from civic.permissions import Capability
from civic.store import ComplaintStore, to_public
from seed.complaints import import_complaints
from seed.users import import_users

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/staff", auto_error=False)

# ---------------------------------------------------------------------------
# App & Globals
# ---------------------------------------------------------------------------
app = FastAPI(title="FixMyTown: Civic Complaint Tracker")
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=600,
)

db_client = None
db = None
executor = ThreadPoolExecutor(max_workers=10)

# ---------------------------------------------------------------------------
# Error rendering
# ---------------------------------------------------------------------------
@app.exception_handler(TrackerError)
async def tracker_error_handler(request: Request, exc: TrackerError):
    return JSONResponse(status_code=exc.status_code,
                        content={"error": exc.message, "code": exc.error_code})

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail},
                        headers=getattr(exc, "headers", None))

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})

# ---------------------------------------------------------------------------
# Startup / Shutdown
# ---------------------------------------------------------------------------
def init_db(database, seed: bool = SEED_ON_STARTUP) -> None:
    """Create indexes and, on an empty database, the demo staff and complaint."""
    complaint_store(database).ensure_indexes()
    UserDirectory(database).ensure_indexes()
    if seed and database.users.count_documents({}) == 0:
        import_users(database)
    if seed and database.complaints.count_documents({}) == 0:
        import_complaints(database)

async def startup_db():
    global db_client, db
    db_client = MongoClient(MONGODB_URL, tz_aware=True)
    db = db_client[MONGODB_DB]
    loop = asyncio.get_event_loop()
    await loop.run_in_executor(executor, init_db, db)
    logger.info("Database initialized (%s)", MONGODB_DB)

@asynccontextmanager
async def lifespan(app: FastAPI):
    await startup_db()
    yield
    if db_client:
        db_client.close()

app.router.lifespan_context = lifespan

# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
async def get_db():
    return db

def complaint_store(database) -> ComplaintStore:
    return ComplaintStore(database, initial_status=INITIAL_STATUS,
                          policy=TransitionPolicy.from_name(STATUS_TRANSITIONS))

def otp_service(database) -> OtpService:
    return OtpService(database, UserDirectory(database), ttl_minutes=OTP_TTL_MINUTES,
                      demo_mode=OTP_DEMO_MODE, demo_code=OTP_DEMO_CODE)

async def run_blocking(fn, *args):
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(executor, fn, *args)

# ---------------------------------------------------------------------------
# Auth Helpers
# ---------------------------------------------------------------------------
def create_access_token(user: dict) -> str:
    to_encode = {"sub": str(user["_id"]), "role": user["role"],
                 "exp": now_utc() + timedelta(hours=JWT_EXPIRE_HOURS)}
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGORITHM)

async def _user_from_token(token: str, db) -> Optional[dict]:
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None
    user_id = payload.get("sub")
    if user_id is None:
        return None
    return await run_blocking(UserDirectory(db).find, user_id)

async def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db=Depends(get_db)):
    if token is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user = await _user_from_token(token, db)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user

async def get_optional_user(token: Optional[str] = Depends(oauth2_scheme), db=Depends(get_db)):
    if token is None:
        return None
    return await _user_from_token(token, db)

def require_role(*roles):
    allowed = {getattr(r, "value", r) for r in roles}
    async def role_checker(user=Depends(get_current_user)):
        if user["role"] not in allowed:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user
    return role_checker

require_staff = require_role(*STAFF_ROLES)

def login_response(user: dict) -> LoginEnvelope:
    return LoginEnvelope(user=public_user(user), access_token=create_access_token(user))

# ---------------------------------------------------------------------------
# HEALTH
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return {"status": "healthy", "system": "FixMyTown", "timestamp": now_utc()}

# ---------------------------------------------------------------------------
# AUTH ENDPOINTS
# ---------------------------------------------------------------------------
@app.post("/auth/staff", response_model=LoginEnvelope)
@limiter.limit("5/minute")
async def staff_login(request: Request, form: StaffLogin, db=Depends(get_db)):
    user = await run_blocking(UserDirectory(db).authenticate_staff, form.username, form.password)
    logger.info("Staff login: %s (%s)", user["username"], user["role"])
    return login_response(user)

@app.post("/auth/send-otp", response_model=OtpSentEnvelope)
@limiter.limit("3/minute")
async def send_otp(request: Request, req: OtpRequest, db=Depends(get_db)):
    expires_at = await run_blocking(otp_service(db).send, req.mobile)
    return OtpSentEnvelope(message="OTP sent successfully", expires_at=expires_at)

@app.post("/auth/verify-otp", response_model=LoginEnvelope)
@limiter.limit("10/minute")
async def verify_otp(request: Request, req: OtpVerify, db=Depends(get_db)):
    user = await run_blocking(otp_service(db).verify, req.mobile, req.otp)
    return login_response(user)

@app.get("/auth/me", response_model=UserEnvelope)
async def get_me(user=Depends(get_current_user)):
    return UserEnvelope(user=public_user(user))

# ---------------------------------------------------------------------------
# USER ENDPOINTS
# ---------------------------------------------------------------------------
@app.post("/users", response_model=UserEnvelope)
async def create_citizen(data: CitizenCreate, db=Depends(get_db)):
    user = await run_blocking(UserDirectory(db).get_or_create_citizen, data.mobile, data.name)
    return UserEnvelope(user=public_user(user))

@app.get("/users/staff", response_model=UserListEnvelope)
async def list_staff(user=Depends(require_staff), db=Depends(get_db)):
    staff = await run_blocking(UserDirectory(db).list_staff)
    return UserListEnvelope(users=[public_user(u) for u in staff])

@app.get("/users/mobile/{mobile}", response_model=UserEnvelope)
async def get_user_by_mobile(mobile: str, db=Depends(get_db)):
    user = await run_blocking(UserDirectory(db).get_by_mobile, mobile)
    return UserEnvelope(user=public_user(user))

@app.get("/users/{user_id}", response_model=UserEnvelope)
async def get_user(user_id: str, db=Depends(get_db)):
    user = await run_blocking(UserDirectory(db).get, user_id)
    return UserEnvelope(user=public_user(user))

# ---------------------------------------------------------------------------
# COMPLAINT ENDPOINTS
# ---------------------------------------------------------------------------
@app.post("/complaints", response_model=ComplaintEnvelope)
async def create_complaint(data: ComplaintCreate, user=Depends(get_optional_user),
                           db=Depends(get_db)):
    try:
        doc = await run_blocking(complaint_store(db).create, data, user)
    except TrackerError:
        raise
    except Exception as e:
        logger.error("Error creating complaint: %s", e)
        raise HTTPException(status_code=500, detail="Internal server error")
    return ComplaintEnvelope(complaint=to_public(doc))

@app.get("/complaints", response_model=ComplaintListEnvelope)
async def list_complaints(
    citizen_id: Optional[str] = None, assigned_to: Optional[str] = None,
    status: Optional[ComplaintStatus] = None, category: Optional[Category] = None,
    priority: Optional[Priority] = None, department: Optional[str] = None,
    db=Depends(get_db)):
    filters = ComplaintFilter(citizen_id=citizen_id, assigned_to=assigned_to, status=status,
                              category=category, priority=priority, department=department)
    try:
        docs = await run_blocking(complaint_store(db).list, filters)
    except Exception as e:
        logger.error("Error fetching complaints: %s", e)
        raise HTTPException(status_code=500, detail="Internal server error")
    return ComplaintListEnvelope(complaints=[to_public(d) for d in docs])

@app.get("/complaints/{complaint_id}", response_model=ComplaintEnvelope)
async def get_complaint(complaint_id: str, db=Depends(get_db)):
    doc = await run_blocking(complaint_store(db).get, complaint_id)
    return ComplaintEnvelope(complaint=to_public(doc))

@app.put("/complaints/{complaint_id}", response_model=ComplaintEnvelope)
async def update_complaint(complaint_id: str, patch: ComplaintUpdate,
                           user=Depends(get_current_user), db=Depends(get_db)):
    store = complaint_store(db)
    current = await run_blocking(store.get, complaint_id)
    permissions.require(user, Capability.VIEW, current)
    needed = permissions.patch_capabilities(patch.model_fields_set)
    if not needed:
        raise ValidationError("No fields to update")
    for capability in needed:
        permissions.require(user, capability, current)
    doc = await run_blocking(store.update, complaint_id, patch, user)
    return ComplaintEnvelope(complaint=to_public(doc))

@app.post("/complaints/{complaint_id}/assign", response_model=ComplaintEnvelope)
async def assign_complaint(complaint_id: str, assignment: Assignment,
                           user=Depends(get_current_user), db=Depends(get_db)):
    if assignment.assigned_to:
        permissions.require(user, Capability.ASSIGN)
    if assignment.assigned_department:
        permissions.require(user, Capability.REASSIGN_DEPARTMENT)
    resolver = AssignmentResolver(complaint_store(db), UserDirectory(db))
    doc = await run_blocking(resolver.assign, complaint_id, assignment.assigned_to,
                             assignment.assigned_department, assignment.note, user)
    return ComplaintEnvelope(complaint=to_public(doc))

@app.post("/complaints/{complaint_id}/reassign", response_model=ComplaintEnvelope)
async def reassign_complaint(complaint_id: str, req: Reassignment,
                             user=Depends(get_current_user), db=Depends(get_db)):
    permissions.require(user, Capability.REASSIGN_DEPARTMENT)
    resolver = AssignmentResolver(complaint_store(db), UserDirectory(db))
    doc = await run_blocking(resolver.reassign, complaint_id, req.department,
                             req.staff, req.note, user)
    return ComplaintEnvelope(complaint=to_public(doc))

@app.post("/complaints/{complaint_id}/reopen", response_model=ComplaintEnvelope)
async def reopen_complaint(complaint_id: str, req: Optional[CitizenAction] = None,
                           user=Depends(get_current_user), db=Depends(get_db)):
    store = complaint_store(db)
    current = await run_blocking(store.get, complaint_id)
    permissions.require(user, Capability.REOPEN, current)
    doc = await run_blocking(store.reopen, complaint_id, user, req.note if req else None)
    return ComplaintEnvelope(complaint=to_public(doc))

@app.post("/complaints/{complaint_id}/verify-fix", response_model=ComplaintEnvelope)
async def verify_fix(complaint_id: str, req: Optional[CitizenAction] = None,
                     user=Depends(get_current_user), db=Depends(get_db)):
    store = complaint_store(db)
    current = await run_blocking(store.get, complaint_id)
    permissions.require(user, Capability.VERIFY_FIX, current)
    doc = await run_blocking(store.verify_fix, complaint_id, user, req.note if req else None)
    return ComplaintEnvelope(complaint=to_public(doc))

@app.get("/complaints/{complaint_id}/comments", response_model=CommentListEnvelope)
async def list_comments(complaint_id: str, db=Depends(get_db)):
    doc = await run_blocking(complaint_store(db).get, complaint_id)
    return CommentListEnvelope(comments=to_public(doc)["comments"])

@app.post("/complaints/{complaint_id}/comments", response_model=ComplaintEnvelope)
async def add_comment(complaint_id: str, comment: CommentCreate,
                      user=Depends(get_current_user), db=Depends(get_db)):
    store = complaint_store(db)
    current = await run_blocking(store.get, complaint_id)
    permissions.require(user, Capability.COMMENT, current)
    doc = await run_blocking(store.add_comment, complaint_id, comment.content, user, comment.type)
    return ComplaintEnvelope(complaint=to_public(doc))

@app.delete("/complaints/{complaint_id}", response_model=DeleteEnvelope)
async def delete_complaint(complaint_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    store = complaint_store(db)
    current = await run_blocking(store.get, complaint_id)
    permissions.require(user, Capability.DELETE, current)
    doc = await run_blocking(store.delete, complaint_id)
    logger.info("Complaint %s deleted by %s", complaint_id, user["_id"])
    return DeleteEnvelope(message="Complaint deleted successfully", complaint=to_public(doc))

# ---------------------------------------------------------------------------
# ANALYTICS
# ---------------------------------------------------------------------------
def analytics_service(database) -> ComplaintAnalytics:
    return ComplaintAnalytics(database, trend_mode=TREND_MODE)

@app.get("/analytics/stats", response_model=StatsResponse)
async def get_stats(user=Depends(require_staff), db=Depends(get_db)):
    try:
        summary = await run_blocking(analytics_service(db).summary)
    except Exception as e:
        logger.error("Error fetching stats: %s", e)
        raise HTTPException(status_code=500, detail="Internal server error")
    return StatsResponse(**summary)

@app.get("/analytics/categories", response_model=CategoryStatsEnvelope)
async def get_category_stats(user=Depends(require_staff), db=Depends(get_db)):
    categories = await run_blocking(analytics_service(db).stats_by_category)
    return CategoryStatsEnvelope(categories=categories)

@app.get("/analytics/departments", response_model=DepartmentStatsEnvelope)
async def get_department_stats(user=Depends(require_staff), db=Depends(get_db)):
    departments = await run_blocking(analytics_service(db).stats_by_department)
    return DepartmentStatsEnvelope(departments=departments)

@app.get("/analytics/trends", response_model=TrendEnvelope)
async def get_trends(bucket: TrendBucket = TrendBucket.MONTH,
                     periods: int = Query(6, ge=1, le=36),
                     mode: Optional[TrendMode] = None,
                     user=Depends(require_staff), db=Depends(get_db)):
    service = analytics_service(db)
    mode = mode or service.trend_mode
    trends = await run_blocking(service.trend, bucket, periods, mode)
    return TrendEnvelope(mode=mode, bucket=bucket, trends=trends)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
