import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel

from leadcall.config import Settings, load_settings, validate_config
from leadcall.dispatcher import BulkDispatcher, CallDispatcher
from leadcall.display import feedback_view, lead_view, sort_for_display
from leadcall.errors import (
    AuthError,
    DispatchError,
    InvalidTransitionError,
    LeadCallError,
    NotFoundError,
    ProviderError,
    ValidationError,
)
from leadcall.intake import import_leads_csv, sample_csv
from leadcall.provider import VapiClient, VoiceProvider
from leadcall.reconciler import StatusReconciler
from leadcall.session import OperatorSession, SessionRegistry
from leadcall.store import LeadStore
from leadcall.validation import validate_campaign_type

logger = logging.getLogger(__name__)

STATUS_CODES = {
    ValidationError: 400,
    AuthError: 401,
    NotFoundError: 404,
    InvalidTransitionError: 409,
    DispatchError: 502,
    ProviderError: 502,
}

LIST_ORDERS = ("display", "raw")


class LeadIn(BaseModel):
    name: str = ""
    phone: str = ""
    email: str = ""
    campaign_type: str | None = None


class LoginIn(BaseModel):
    password: str = ""


def _build_provider(settings: Settings) -> VapiClient:
    return VapiClient(
        api_key=settings.vapi_api_key,
        assistant_id=settings.vapi_assistant_id,
        phone_number_id=settings.vapi_phone_number_id,
        base_url=settings.vapi_base_url,
        timeout=settings.provider_timeout,
        declined_end_reasons=settings.declined_end_reasons,
    )


def create_app(
    settings: Settings | None = None,
    store: LeadStore | None = None,
    provider: VoiceProvider | None = None,
) -> FastAPI:
    """Build the operator API.

    Anything not passed in is built from the environment at startup and
    torn down at shutdown; injected collaborators are left for the caller
    to close.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = settings
        if cfg is None:
            load_dotenv()
            validate_config()
            cfg = load_settings()
        owned_store = store is None
        owned_provider = provider is None
        lead_store = store or LeadStore(cfg.db_path)
        voice = provider or _build_provider(cfg)

        app.state.store = lead_store
        app.state.sessions = SessionRegistry(cfg.operator_password)
        app.state.dispatcher = CallDispatcher(lead_store, voice)
        app.state.bulk = BulkDispatcher(lead_store, app.state.dispatcher)
        app.state.reconciler = StatusReconciler(lead_store, voice)
        logger.info("Lead call API started (db=%s)", lead_store.path)
        try:
            yield
        finally:
            app.state.sessions.clear()
            if owned_provider:
                await voice.close()
            if owned_store:
                lead_store.close()
            logger.info("Lead call API stopped")

    app = FastAPI(title="Lead Call Manager", lifespan=lifespan)

    @app.exception_handler(LeadCallError)
    async def lead_call_error_handler(request: Request, exc: LeadCallError):
        return JSONResponse(status_code=STATUS_CODES.get(type(exc), 500), content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(
            status_code=400,
            content={"kind": ValidationError.kind, "message": message},
        )

    def require_session(
        request: Request,
        x_session_token: str | None = Header(default=None),
    ) -> OperatorSession:
        return request.app.state.sessions.require(x_session_token)

    @app.get("/health")
    async def health():
        return PlainTextResponse("ok")

    @app.post("/api/auth/login")
    async def login(body: LoginIn, request: Request):
        session = request.app.state.sessions.login(body.password)
        return {"success": True, "token": session.token, "role": session.role, "message": "Logged in"}

    @app.post("/api/auth/logout")
    async def logout(request: Request, session: OperatorSession = Depends(require_session)):
        request.app.state.sessions.logout(session.token)
        return {"success": True, "message": "Logged out"}

    @app.get("/api/leads")
    async def list_leads(
        request: Request,
        campaign_type: str | None = None,
        order: str = "display",
        session: OperatorSession = Depends(require_session),
    ):
        """Leads in dashboard order by default; ``order=raw`` keeps insertion order."""
        if order not in LIST_ORDERS:
            raise ValidationError(f"Unknown order: {order}")
        store: LeadStore = request.app.state.store
        campaign_type = validate_campaign_type(campaign_type)
        leads = store.list_leads(campaign_type)
        if order == "display":
            leads = sort_for_display(leads)
        counts = store.counts(campaign_type)
        return {
            "leads": [lead_view(lead) for lead in leads],
            "total": counts["total"],
            "pending": counts["pending"],
        }

    @app.post("/api/leads", status_code=201)
    async def create_lead(
        body: LeadIn,
        request: Request,
        session: OperatorSession = Depends(require_session),
    ):
        lead = request.app.state.store.create(
            body.name, body.phone, body.email, campaign_type=body.campaign_type,
        )
        return {"message": "Customer created successfully", "id": lead.id}

    @app.post("/api/leads/bulk", status_code=201)
    async def upload_leads(
        request: Request,
        campaign_type: str | None = None,
        session: OperatorSession = Depends(require_session),
    ):
        raw = await request.body()
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            raise ValidationError("Upload must be UTF-8 encoded CSV")
        result = import_leads_csv(request.app.state.store, text, campaign_type=campaign_type)
        return result.to_dict()

    @app.get("/api/sample-csv")
    async def download_sample(session: OperatorSession = Depends(require_session)):
        return Response(
            content=sample_csv(),
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="sample-leads.csv"'},
        )

    @app.get("/api/leads/{lead_id}/feedback")
    async def get_feedback(
        lead_id: int,
        request: Request,
        session: OperatorSession = Depends(require_session),
    ):
        return feedback_view(request.app.state.store.get(lead_id))

    @app.delete("/api/leads/{lead_id}")
    async def delete_lead(
        lead_id: int,
        request: Request,
        session: OperatorSession = Depends(require_session),
    ):
        request.app.state.store.delete(lead_id)
        return {"message": "Lead deleted successfully"}

    @app.post("/api/call/bulk")
    async def call_all_pending(request: Request, session: OperatorSession = Depends(require_session)):
        result = await request.app.state.bulk.dispatch_all_pending()
        return result.to_dict()

    @app.post("/api/call/{lead_id}")
    async def call_lead(
        lead_id: int,
        request: Request,
        session: OperatorSession = Depends(require_session),
    ):
        call_id = await request.app.state.dispatcher.dispatch(lead_id)
        return {"message": "Call initiated successfully", "callId": call_id}

    @app.post("/api/calls/check-status")
    async def check_status(request: Request, session: OperatorSession = Depends(require_session)):
        result = await request.app.state.reconciler.check_status()
        return result.to_dict()

    return app


app = create_app()


def main() -> None:
    load_dotenv()
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run("leadcall.app:app", host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
