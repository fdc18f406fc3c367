"""
CivicTrack - REST API

FastAPI application exposing geofenced issue submission, the status
workflow, community flagging and voting, and issue listings.

Run with: uvicorn civictrack.api.main:app --reload
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from civictrack import __version__
from civictrack.core.config import settings
from civictrack.core.errors import (
    CivicTrackError,
    ConcurrencyConflict,
    DuplicateFlag,
    GeofenceViolation,
    InfrastructureError,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    PreconditionError,
    ValidationError,
)
from civictrack.core.geo_utils import GeoPoint
from civictrack.core.logging import get_logger, setup_logging
from civictrack.database import DatabaseConnection, SqlAlchemyIssueRepository
from civictrack.issues.engine import IssueEngine
from civictrack.issues.models import Actor, ReporterProfile, Role, utcnow
from civictrack.issues.query import IssueFilters
from civictrack.issues.validation import parse_enum

logger = get_logger(__name__)

# Most specific class first; the first isinstance match wins
ERROR_STATUS_CODES = [
    (GeofenceViolation, 422),
    (ValidationError, 422),
    (PreconditionError, 422),
    (InvalidTransition, 409),
    (DuplicateFlag, 409),
    (ConcurrencyConflict, 409),
    (PermissionDenied, 403),
    (NotFound, 404),
    (InfrastructureError, 503),
]


def status_code_for(error: CivicTrackError) -> int:
    for error_cls, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_cls):
            return status_code
    return 500


# ============================================================================
# Pydantic Models
# ============================================================================

class LocationModel(BaseModel):
    """Issue position and address."""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None


class ReporterModel(BaseModel):
    """Verified reporter profile forwarded by the identity layer."""
    registered_latitude: Optional[float] = None
    registered_longitude: Optional[float] = None
    preferred_radius_km: float = 5.0
    is_banned: bool = False


class IssueCreateRequest(BaseModel):
    """Request to report a new issue."""
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[str] = None
    location: Optional[LocationModel] = None
    is_anonymous: bool = False
    reporter: ReporterModel = Field(default_factory=ReporterModel)


class StatusUpdateRequest(BaseModel):
    """Request to move an issue to another status."""
    status: str
    comment: Optional[str] = None


class FlagRequest(BaseModel):
    """Request to flag an issue as inappropriate."""
    reason: str


class VoteRequest(BaseModel):
    """Request to vote on an issue."""
    vote_type: str


class RejectRequest(BaseModel):
    """Request to reject an issue as spam."""
    comment: Optional[str] = None


class HealthResponse(BaseModel):
    """API health check response."""
    status: str
    version: str
    timestamp: str
    database: str


# ============================================================================
# Dependencies
# ============================================================================

def get_engine(request: Request) -> IssueEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Issue engine is not initialized")
    return engine


def get_viewer(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: str = Header(Role.USER.value),
) -> Optional[Actor]:
    """Caller identity if supplied; anonymous viewers get None."""
    if not x_actor_id:
        return None
    return Actor(actor_id=x_actor_id, role=parse_enum(x_actor_role, Role, "x-actor-role"))


def require_actor(viewer: Optional[Actor] = Depends(get_viewer)) -> Actor:
    if viewer is None:
        raise HTTPException(status_code=401, detail="X-Actor-Id header is required")
    return viewer


# ============================================================================
# Application
# ============================================================================

def create_app(engine: Optional[IssueEngine] = None) -> FastAPI:
    """
    Create the API application.

    Args:
        engine: Prebuilt engine; when omitted one is built on startup from
            settings.database_url and torn down on shutdown
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        db = None
        if app.state.engine is None:
            db = DatabaseConnection()
            db.create_tables()
            app.state.db = db
            app.state.engine = IssueEngine(SqlAlchemyIssueRepository(db))
            logger.info("Issue engine started")
        try:
            yield
        finally:
            if db is not None:
                db.close()
                app.state.engine = None
                app.state.db = None

    app = FastAPI(
        title="CivicTrack",
        description="Geofenced civic issue reporting with status workflow and community moderation",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.engine = engine
    app.state.db = None

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CivicTrackError)
    async def handle_civictrack_error(request: Request, exc: CivicTrackError):
        status_code = status_code_for(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check(request: Request):
        """Check API health and database connectivity."""
        db: Optional[DatabaseConnection] = request.app.state.db
        if db is None:
            database = "not_configured"
        else:
            database = "ok" if db.check_connection() else "unavailable"

        return HealthResponse(
            status="healthy" if database != "unavailable" else "degraded",
            version=__version__,
            timestamp=utcnow().isoformat(),
            database=database,
        )

    @app.post("/api/v1/issues", status_code=201, tags=["Issues"])
    def create_issue(
        request: IssueCreateRequest,
        actor: Actor = Depends(require_actor),
        engine: IssueEngine = Depends(get_engine),
    ):
        """
        Report a new issue.

        The issue must lie within the reporter's effective radius of their
        registered home location.
        """
        reporter = request.reporter
        home = None
        if reporter.registered_latitude is not None and reporter.registered_longitude is not None:
            home = GeoPoint(reporter.registered_latitude, reporter.registered_longitude)

        profile = ReporterProfile(
            id=actor.actor_id,
            registered_location=home,
            preferred_radius_km=reporter.preferred_radius_km,
            role=actor.role,
            is_banned=reporter.is_banned,
        )
        payload = request.model_dump(exclude={"reporter"}, exclude_none=True)

        return engine.create_issue(profile, payload).to_dict()

    @app.get("/api/v1/issues", tags=["Issues"])
    def list_issues(
        category: Optional[str] = Query(None),
        status: Optional[str] = Query(None),
        priority: Optional[str] = Query(None),
        search: Optional[str] = Query(None),
        latitude: Optional[float] = Query(None),
        longitude: Optional[float] = Query(None),
        radius_km: Optional[float] = Query(None),
        reporter_id: Optional[str] = Query(None),
        page: int = Query(1),
        page_size: Optional[int] = Query(None),
        viewer: Optional[Actor] = Depends(get_viewer),
        engine: IssueEngine = Depends(get_engine),
    ):
        """List visible issues, newest first."""
        filters = IssueFilters.from_mapping({
            "category": category,
            "status": status,
            "priority": priority,
            "search": search,
            "latitude": latitude,
            "longitude": longitude,
            "radius_km": radius_km,
            "reporter_id": reporter_id,
            "page": page,
            "page_size": page_size,
        })
        return engine.list_issues(filters, viewer).to_dict()

    @app.get("/api/v1/issues/{issue_id}", tags=["Issues"])
    def get_issue(
        issue_id: str,
        viewer: Optional[Actor] = Depends(get_viewer),
        engine: IssueEngine = Depends(get_engine),
    ):
        """Get a single issue with its status history."""
        return engine.get_issue(issue_id, viewer).to_dict()

    @app.put("/api/v1/issues/{issue_id}/status", tags=["Workflow"])
    def update_issue_status(
        issue_id: str,
        request: StatusUpdateRequest,
        actor: Actor = Depends(require_actor),
        engine: IssueEngine = Depends(get_engine),
    ):
        """Move an issue along the status workflow."""
        return engine.transition_status(issue_id, request.status, actor, request.comment).to_dict()

    @app.post("/api/v1/issues/{issue_id}/flags", tags=["Moderation"])
    def flag_issue(
        issue_id: str,
        request: FlagRequest,
        actor: Actor = Depends(require_actor),
        engine: IssueEngine = Depends(get_engine),
    ):
        """Flag an issue. Each user can flag an issue once."""
        result = engine.flag_issue(issue_id, actor.actor_id, request.reason)
        return {
            "issue": result.issue.to_dict(),
            "crossed_threshold": result.crossed_threshold,
        }

    @app.delete("/api/v1/issues/{issue_id}/flags", tags=["Moderation"])
    def clear_flags(
        issue_id: str,
        actor: Actor = Depends(require_actor),
        engine: IssueEngine = Depends(get_engine),
    ):
        """Clear all flags and unhide an issue (admin only)."""
        return engine.clear_flags(issue_id, actor).to_dict()

    @app.post("/api/v1/issues/{issue_id}/reject", tags=["Moderation"])
    def reject_issue(
        issue_id: str,
        request: RejectRequest,
        actor: Actor = Depends(require_actor),
        engine: IssueEngine = Depends(get_engine),
    ):
        """Reject an issue as spam (admin only)."""
        return engine.reject_as_spam(issue_id, actor, request.comment).to_dict()

    @app.post("/api/v1/issues/{issue_id}/votes", tags=["Voting"])
    def vote_issue(
        issue_id: str,
        request: VoteRequest,
        actor: Actor = Depends(require_actor),
        engine: IssueEngine = Depends(get_engine),
    ):
        """Upvote or downvote an issue, replacing any earlier vote."""
        return engine.cast_vote(issue_id, actor, request.vote_type).to_dict()

    @app.delete("/api/v1/issues/{issue_id}/votes", tags=["Voting"])
    def retract_vote(
        issue_id: str,
        actor: Actor = Depends(require_actor),
        engine: IssueEngine = Depends(get_engine),
    ):
        """Withdraw the caller's vote on an issue."""
        return engine.retract_vote(issue_id, actor).to_dict()

    @app.get("/api/v1/admin/flagged", tags=["Moderation"])
    def list_flagged_issues(
        page: int = Query(1),
        page_size: Optional[int] = Query(None),
        actor: Actor = Depends(require_actor),
        engine: IssueEngine = Depends(get_engine),
    ):
        """Moderation queue of flagged issues (admin only)."""
        return engine.list_flagged(actor, page=page, page_size=page_size).to_dict()


app = create_app()
