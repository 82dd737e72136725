import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.exceptions import HTTPException as StarletteHTTPException

from db import Database
from errors import AppError, AuthenticationError, ServerError
from identity import IdentityVerifier, JwtIdentityVerifier
from models import HabitIn, HabitPatch, PointsIn, ProgressIn
from repo_habits import HabitRepo
from repo_owners import OwnerRepo
from repo_progress import ProgressRepo
from service_habits import HabitService
from service_owners import OwnerService
from service_progress import ProgressService
from service_stats import StatsService
from settings import settings

logger = logging.getLogger(__name__)

VERSION = "2.0.0"


@dataclass
class Services:
    """Everything the routes need, built once per process.

    Routes stay thin and never see repositories. Tests build this with
    in-memory repositories and pass it to `create_app()`.
    """

    habits: HabitService
    progress: ProgressService
    stats: StatsService
    owners: OwnerService
    db: Optional[Database] = None

    @classmethod
    def from_database(cls, db: Database) -> "Services":
        habit_repo = HabitRepo(db)
        progress_repo = ProgressRepo(db)
        return cls(
            habits=HabitService(habit_repo, progress_repo),
            progress=ProgressService(habit_repo, progress_repo),
            stats=StatsService(progress_repo),
            owners=OwnerService(OwnerRepo(db)),
            db=db,
        )


bearer = HTTPBearer(auto_error=False)


async def bounded(awaitable):
    """Await store work within the request budget; a timeout is a server error."""

    try:
        return await asyncio.wait_for(awaitable, timeout=settings.request_timeout_seconds)
    except asyncio.TimeoutError:
        logger.error("Request exceeded the %.1fs budget", settings.request_timeout_seconds)
        raise ServerError("The request took too long. Please try again.") from None


def get_services(request: Request) -> Services:
    return request.app.state.services


async def current_owner(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> str:
    """Owner id of the caller, from `Authorization: Bearer <token>`."""

    if credentials is None or not credentials.credentials:
        raise AuthenticationError()
    verifier: IdentityVerifier = request.app.state.verifier
    return await bounded(verifier.verify(credentials.credentials))


def ok(data: Any = None, message: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body


def _dump(model) -> Dict[str, Any]:
    return model.model_dump(mode="json")


def create_app(services: Optional[Services] = None, verifier: Optional[IdentityVerifier] = None) -> FastAPI:
    """Build the API.

    Without `services` the app opens its own Postgres pool on startup and
    closes it on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if services is not None:
            yield
            return
        db = Database.from_settings()
        await db.open()
        app.state.services = Services.from_database(db)
        try:
            yield
        finally:
            await db.close()

    app = FastAPI(title="Habit Tracker API", version=VERSION, lifespan=lifespan)
    app.state.verifier = verifier or JwtIdentityVerifier.from_settings()
    if services is not None:
        app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def catch_unexpected(request: Request, call_next):
        try:
            response = await call_next(request)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unhandled error on %s %s", request.method, request.url.path)
            message = "An unexpected error occurred" if settings.is_production else str(exc)
            response = JSONResponse(
                status_code=500,
                content={"success": False, "error": "Server error", "message": message},
            )
        logger.debug("%s %s -> %s", request.method, request.url.path, response.status_code)
        return response

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", exc.__class__.__name__, request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = [
            {
                "field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"),
                "message": err.get("msg", "Invalid value"),
            }
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Validation failed",
                "message": "The request is invalid",
                "details": details,
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            content = {
                "success": False,
                "error": "Not found",
                "message": f"Route {request.method} {request.url.path} not found",
            }
        else:
            content = {"success": False, "error": "Request failed", "message": str(exc.detail)}
        return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))

    # ----------------------- Public -----------------------

    @app.get("/")
    async def root():
        return ok(
            message="Habit Tracker API",
            version=VERSION,
            endpoints={
                "habits": "/habits (GET, POST), /habits/{id} (GET, PUT, DELETE)",
                "progressions": "/progressions (GET, POST), /progressions/habits/{id} (GET)",
                "stats": "/stats/weekly (GET)",
                "owners": "/owners/me (GET), /owners/me/points (POST)",
            },
        )

    @app.get("/health")
    async def health(svc: Services = Depends(get_services)):
        timestamp = datetime.now(timezone.utc).isoformat()
        if svc.db is None:
            return ok(status="healthy", database="not configured", timestamp=timestamp)
        try:
            await bounded(svc.db.ping())
        except Exception:  # noqa: BLE001
            logger.exception("Database health check failed")
            return JSONResponse(
                status_code=503,
                content={
                    "success": False,
                    "error": "Service unavailable",
                    "message": "Database is not reachable",
                    "database": "disconnected",
                    "timestamp": timestamp,
                },
            )
        return ok(status="healthy", database="connected", timestamp=timestamp)

    # ----------------------- Habits -----------------------

    @app.post("/habits", status_code=201)
    async def create_habit(
        body: HabitIn,
        owner: str = Depends(current_owner),
        svc: Services = Depends(get_services),
    ):
        fields = body.model_dump(exclude_unset=True)
        name = fields.pop("name", None)
        habit = await bounded(svc.habits.create_habit(owner, name, fields))
        return ok(_dump(habit), message="Habit created successfully")

    @app.get("/habits")
    async def list_habits(owner: str = Depends(current_owner), svc: Services = Depends(get_services)):
        habits = await bounded(svc.habits.list_habits(owner))
        return ok([_dump(h) for h in habits], count=len(habits))

    @app.get("/habits/{habit_id}")
    async def get_habit(habit_id: str, owner: str = Depends(current_owner), svc: Services = Depends(get_services)):
        habit = await bounded(svc.habits.get_habit(owner, habit_id))
        return ok(_dump(habit))

    @app.put("/habits/{habit_id}")
    async def update_habit(
        habit_id: str,
        body: HabitPatch,
        owner: str = Depends(current_owner),
        svc: Services = Depends(get_services),
    ):
        habit = await bounded(svc.habits.update_habit(owner, habit_id, body.model_dump(exclude_unset=True)))
        return ok(_dump(habit), message="Habit updated successfully")

    @app.delete("/habits/{habit_id}")
    async def delete_habit(habit_id: str, owner: str = Depends(current_owner), svc: Services = Depends(get_services)):
        habit = await bounded(svc.habits.delete_habit(owner, habit_id))
        return ok(_dump(habit), message="Habit deleted successfully")

    # ----------------------- Progress -----------------------

    @app.post("/progressions", status_code=201)
    async def submit_progress(
        body: ProgressIn,
        owner: str = Depends(current_owner),
        svc: Services = Depends(get_services),
    ):
        record = await bounded(svc.progress.submit_progress(owner, body.habit_id, body.day, body.value))
        return ok(_dump(record), message="Progress saved")

    @app.get("/progressions")
    async def list_progress(
        day: Optional[str] = Query(None),
        owner: str = Depends(current_owner),
        svc: Services = Depends(get_services),
    ):
        day = day or datetime.now(timezone.utc).date().isoformat()
        records = await bounded(svc.progress.list_progress(owner, day))
        return ok([_dump(r) for r in records], count=len(records), day=day)

    @app.get("/progressions/habits/{habit_id}")
    async def habit_history(
        habit_id: str,
        limit: int = Query(settings.max_history_limit),
        owner: str = Depends(current_owner),
        svc: Services = Depends(get_services),
    ):
        records = await bounded(svc.progress.list_progress_for_habit(owner, habit_id, limit))
        return ok([_dump(r) for r in records], count=len(records))

    # ----------------------- Stats & profile -----------------------

    @app.get("/stats/weekly")
    async def weekly_stats(owner: str = Depends(current_owner), svc: Services = Depends(get_services)):
        stats = await bounded(svc.stats.weekly_stats(owner))
        return ok(_dump(stats))

    @app.get("/owners/me")
    async def my_profile(owner: str = Depends(current_owner), svc: Services = Depends(get_services)):
        profile = await bounded(svc.owners.get_profile(owner))
        return ok(_dump(profile))

    @app.post("/owners/me/points")
    async def add_points(
        body: PointsIn,
        owner: str = Depends(current_owner),
        svc: Services = Depends(get_services),
    ):
        profile = await bounded(svc.owners.add_points(owner, body.points))
        return ok(_dump(profile), message="Points added")

    return app


logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port)
