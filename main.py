import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Response, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError as PydanticValidationError
from starlette.requests import HTTPConnection

import config
import database
from errors import AuthenticationError, TrackademicError, ValidationError
from export import XLSX_MEDIA_TYPE
from filters import FilteredView
from identity import IdentityProvider, require_role
from repository import MongoSubmissionRepository, SubmissionRepository, build_repository
from resolver import Outcome
from review import ReviewStateMachine
from schemas import (
    FilterConfig,
    LiveView,
    OnboardingIn,
    Principal,
    ReviewAction,
    SessionOut,
    SignInIn,
    SignUpIn,
    SubmissionIn,
    SubmissionRecord,
    SubmitOut,
    field_errors,
)
from submissions import SubmissionService

config.configure_logging()
logger = logging.getLogger(__name__)

router = APIRouter()
# Missing credentials are reported by current_principal as AUTH_FAILED
security = HTTPBearer(auto_error=False)


# ---------- Dependencies ----------
def get_repository(conn: HTTPConnection) -> SubmissionRepository:
    return conn.app.state.repository


def get_identity(conn: HTTPConnection) -> IdentityProvider:
    return conn.app.state.identity


def get_submission_service(repository: SubmissionRepository = Depends(get_repository)) -> SubmissionService:
    return SubmissionService(repository)


def get_review_machine(repository: SubmissionRepository = Depends(get_repository)) -> ReviewStateMachine:
    return ReviewStateMachine(repository, allow_rereview=config.ALLOW_REREVIEW)


def bearer_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> Optional[str]:
    return credentials.credentials if credentials else None


def current_principal(token: Optional[str] = Depends(bearer_token),
                      identity: IdentityProvider = Depends(get_identity)) -> Principal:
    principal = identity.current(token)
    if principal is None:
        raise AuthenticationError("Not signed in")
    return principal


def filter_params(status: Optional[str] = None, batch: Optional[str] = None,
                  semester: Optional[str] = None, event_type: Optional[str] = None,
                  month: Optional[str] = None, start_date: Optional[str] = None,
                  end_date: Optional[str] = None) -> FilterConfig:
    try:
        return FilterConfig.model_validate({
            "status": status, "batch": batch, "semester": semester, "event_type": event_type,
            "month": month, "start_date": start_date, "end_date": end_date,
        })
    except PydanticValidationError as exc:
        raise ValidationError("Invalid filter", fields=field_errors(exc))


@router.get("/")
def read_root():
    return {"message": f"{config.APP_NAME} Backend Running"}


@router.get("/test")
async def test_database(repository: SubmissionRepository = Depends(get_repository)):
    response = {
        "backend": "✅ Running",
        "repository": config.REPOSITORY_BACKEND,
        "database": "❌ Not Available",
        "connection_status": "Not Connected",
        "collections": []
    }

    if await repository.ping():
        response["database"] = "✅ Available"
        response["connection_status"] = "Connected"
        if isinstance(repository, MongoSubmissionRepository) and database.db is not None:
            try:
                response["collections"] = database.db.list_collection_names()[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"

    response["database_url"] = "✅ Set" if config.DATABASE_URL else "❌ Not Set"
    response["database_name"] = "✅ Set" if config.DATABASE_NAME else "❌ Not Set"
    response["config_issues"] = config.validate_config()
    return response


# ---------- Identity ----------
@router.post("/auth/signup", response_model=SessionOut, status_code=201)
async def sign_up(payload: SignUpIn, identity: IdentityProvider = Depends(get_identity)):
    principal = identity.sign_up(payload.email, payload.password, payload.role, payload.display_name)
    token = identity.sign_in(payload.email, payload.password)
    return SessionOut(token=token, principal=principal)


@router.post("/auth/signin", response_model=SessionOut)
async def sign_in(payload: SignInIn, identity: IdentityProvider = Depends(get_identity)):
    token = identity.sign_in(payload.email, payload.password)
    return SessionOut(token=token, principal=identity.current(token))


@router.post("/auth/signout")
async def sign_out(token: Optional[str] = Depends(bearer_token),
                   identity: IdentityProvider = Depends(get_identity)):
    if token:
        identity.sign_out(token)
    return {"ok": True}


@router.get("/auth/me", response_model=Principal)
async def me(principal: Principal = Depends(current_principal)):
    return principal


@router.post("/auth/onboarding", response_model=Principal)
async def complete_onboarding(payload: OnboardingIn,
                              principal: Principal = Depends(current_principal),
                              identity: IdentityProvider = Depends(get_identity)):
    return identity.complete_onboarding(principal.id, payload.display_name, payload.department, payload.batch)


# ---------- Submissions Flow ----------
@router.post("/submissions", response_model=SubmitOut, status_code=201)
async def submit(payload: SubmissionIn, response: Response,
                 principal: Principal = Depends(current_principal),
                 service: SubmissionService = Depends(get_submission_service)):
    result = await service.submit(principal, payload)
    if result.outcome is Outcome.OVERWRITE:
        response.status_code = 200
        return SubmitOut(outcome="overwritten", message=result.message, submission=result.submission)
    return SubmitOut(outcome="created", message=result.message, submission=result.submission)


@router.get("/submissions/mine", response_model=List[SubmissionRecord])
async def my_submissions(filters: FilterConfig = Depends(filter_params),
                         principal: Principal = Depends(current_principal),
                         service: SubmissionService = Depends(get_submission_service)):
    require_role(principal, "student")
    return await service.view_for(principal, filters)


@router.get("/submissions", response_model=List[SubmissionRecord])
async def department_submissions(filters: FilterConfig = Depends(filter_params),
                                 principal: Principal = Depends(current_principal),
                                 service: SubmissionService = Depends(get_submission_service)):
    require_role(principal, "staff")
    return await service.view_for(principal, filters)


@router.get("/submissions/export")
async def export_submissions(filters: FilterConfig = Depends(filter_params),
                             principal: Principal = Depends(current_principal),
                             service: SubmissionService = Depends(get_submission_service)):
    filename, content, count = await service.export(principal, filters)
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Record-Count": str(count),
        },
    )


@router.post("/submissions/{submission_id}/review", response_model=SubmissionRecord)
async def review_submission(submission_id: str, action: ReviewAction,
                            principal: Principal = Depends(current_principal),
                            machine: ReviewStateMachine = Depends(get_review_machine)):
    return await machine.review(principal, submission_id, action.decision)


# ---------- Live View ----------
@router.websocket("/ws/submissions")
async def live_submissions(websocket: WebSocket, token: Optional[str] = None,
                           identity: IdentityProvider = Depends(get_identity),
                           service: SubmissionService = Depends(get_submission_service)):
    principal = identity.current(token)
    if principal is None:
        await websocket.close(code=4401)
        return
    try:
        subscription = service.subscribe_for(principal)
    except TrackademicError as e:
        await websocket.close(code=4403, reason=e.message)
        return

    await websocket.accept()
    view = FilteredView()

    async def push():
        await websocket.send_json(LiveView(filters=view.config, records=view.visible).model_dump(mode="json"))

    async def pump():
        try:
            async for snapshot in subscription:
                view.set_records(snapshot)
                await push()
        except TrackademicError as e:
            await websocket.send_json({"error": e.to_dict()})

    async with subscription:
        pump_task = asyncio.create_task(pump())
        try:
            while True:
                message = await websocket.receive_json()
                try:
                    if message.get("reset"):
                        view.reset()
                    else:
                        view.set_filter(message.get("name"), message.get("value"))
                except ValidationError as e:
                    await websocket.send_json({"error": e.to_dict()})
                    continue
                await push()
        except WebSocketDisconnect:
            logger.info(f"Live view closed for {principal.email}")
        finally:
            pump_task.cancel()
            try:
                await pump_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"Live view push to {principal.email} failed: {e}")


# ---------- App ----------
async def trackademic_error_handler(request, exc: TrackademicError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request, exc: RequestValidationError):
    fields = field_errors(exc, skip_prefix=("body", "query", "path"))
    return JSONResponse(status_code=422, content=ValidationError(fields=fields).to_dict())


def create_app(repository: Optional[SubmissionRepository] = None,
               identity: Optional[IdentityProvider] = None) -> FastAPI:
    for issue in config.validate_config():
        logger.warning(f"Configuration issue: {issue}")

    application = FastAPI(title=f"{config.APP_NAME} Submission Review API")
    application.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.state.repository = repository if repository is not None else build_repository()
    application.state.identity = identity if identity is not None else IdentityProvider()
    application.add_exception_handler(TrackademicError, trackademic_error_handler)
    application.add_exception_handler(RequestValidationError, request_validation_handler)
    application.include_router(router)
    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
