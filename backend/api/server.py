"""
HTTP API for LeadBot
====================

Exposes the outreach backend over REST:
- Scheduler control and manual outreach runs
- Manual message sends and inbound WhatsApp/email replies
- Lead CRUD
- Scraper jobs
- AI message generation and conversation summaries

Every response uses the `{status, statusCode, message}` envelope, with `data`
on success and `details` on errors.
"""

import asyncio
import json
import os
import signal
import time
import traceback
from contextlib import asynccontextmanager
from datetime import datetime
from email.utils import parseaddr
from typing import Any, Dict, List, Literal, Optional, Tuple

import uvicorn
from fastapi import APIRouter, BackgroundTasks, Body, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..core.config import settings
from ..core.database import init_database, ping_database
from ..core.errors import LeadBotError, NotFoundError
from ..core.logger import logger
from ..models.enums import JobType, LeadStatus, MessageChannel
from ..models.lead import LeadCreate, LeadUpdate
from ..services.container import Services, get_services
from ..services.lead_generator import SOURCES


SERVICE_NAME = "LeadBot API"
VERSION = "1.0.0"

SENSITIVE_KEYS = ("password", "token", "authorization", "apikey", "secret")


# ============================================================================
# RESPONSE ENVELOPE
# ============================================================================

def success(status_code: int = 200, message: str = "Operation successful", data: Any = None) -> JSONResponse:
    content: Dict[str, Any] = {"status": "success", "statusCode": status_code, "message": message}
    if data is not None:
        content["data"] = data
    return JSONResponse(status_code=status_code, content=content)


def error(status_code: int = 500, message: str = "An error occurred", details: Any = None,
          stack: Optional[str] = None) -> JSONResponse:
    content: Dict[str, Any] = {"status": "error", "statusCode": status_code, "message": message}
    if details is not None:
        content["details"] = details
    if stack:
        content["stack"] = stack
    return JSONResponse(status_code=status_code, content=content)


def camel(model: BaseModel) -> Dict[str, Any]:
    return {to_camel(key): value for key, value in model.model_dump(mode="json").items()}


def redact(value: Any) -> Any:
    """Replace values of credential-like keys before they reach the log."""
    if isinstance(value, dict):
        return {
            key: "[REDACTED]" if any(s in str(key).lower() for s in SENSITIVE_KEYS) else redact(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [redact(item) for item in value]
    return value


# ============================================================================
# REQUEST MODELS
# ============================================================================

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SendMessageRequest(CamelModel):
    lead_id: str = Field(min_length=1)
    channel: MessageChannel
    template_id: str = "intro"
    variables: Optional[Dict[str, str]] = None


class ScrapeRequest(CamelModel):
    sources: List[Literal["websites", "business directories", "google maps"]] = Field(min_length=1)
    keywords: str = Field(min_length=1)
    location: str = ""
    limit: int = Field(50, ge=1, le=500)


class GenerateMessageRequest(CamelModel):
    lead_id: str = Field(min_length=1)
    context: str = Field(min_length=1)
    purpose: str = Field(min_length=1)


class ConversationTurn(CamelModel):
    sender: Literal["bot", "lead"]
    message: str = Field(min_length=1)
    timestamp: Optional[datetime] = None


class SummarizeRequest(CamelModel):
    lead_id: str = Field(min_length=1)
    conversation_history: List[ConversationTurn] = Field(min_length=1)


class ExtractKeyPointsRequest(CamelModel):
    text: str = Field(min_length=1)


class EmailInboundRequest(CamelModel):
    sender: str = Field(alias="from", min_length=1)
    subject: Optional[str] = None
    text: str = Field(min_length=1)
    message_id: Optional[str] = None


class LeadCreateRequest(LeadCreate):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LeadUpdateRequest(LeadUpdate):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# LIFECYCLE
# ============================================================================

def install_shutdown_handler(loop: asyncio.AbstractEventLoop, services: Services):
    """Shut the process down when an exception escapes to the event loop."""

    def handle(loop, context):
        exc = context.get("exception")
        if not isinstance(exc, Exception):
            loop.default_exception_handler(context)
            return
        logger.critical(f"Unhandled error on the event loop: {context.get('message', exc)}",
                        exc_info=(type(exc), exc, exc.__traceback__))
        services.scheduler.stop()
        services.rollover.cancel()
        logger.info("Shutting down gracefully...")
        os.kill(os.getpid(), signal.SIGTERM)

    loop.set_exception_handler(handle)


@asynccontextmanager
async def lifespan(app: FastAPI):
    provider = app.dependency_overrides.get(get_services, get_services)
    services = provider()

    init_database()
    install_shutdown_handler(asyncio.get_running_loop(), services)
    services.scheduler.start()
    services.rollover.start()
    logger.info(f"{SERVICE_NAME} started in {settings.environment} mode")

    yield

    services.scheduler.stop()
    services.rollover.cancel()
    logger.info(f"{SERVICE_NAME} stopped")


app = FastAPI(
    title=SERVICE_NAME,
    description="Lead outreach backend with a rate-limited daily job",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.cors_origins.split(",")],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    body = ""
    if request.method in ("POST", "PUT", "PATCH"):
        raw = await request.body()
        if raw:
            try:
                body = " " + json.dumps(redact(json.loads(raw)))
            except ValueError:
                body = f" <{len(raw)} bytes>"
    logger.info(f"{request.method} {request.url.path}{body}")

    start_time = time.time()
    response = await call_next(request)
    elapsed_ms = (time.time() - start_time) * 1000
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.0f}ms)")
    return response


# ============================================================================
# ERROR HANDLERS
# ============================================================================

def _public_message(status_code: int, message: str) -> str:
    if settings.is_production and status_code >= 500:
        return "An internal server error occurred."
    return message


@app.exception_handler(LeadBotError)
async def handle_app_error(request: Request, exc: LeadBotError):
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"Error: {exc.message} ({request.method} {request.url.path})")
    return error(exc.status_code, _public_message(exc.status_code, exc.message), exc.details)


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    details = []
    for item in exc.errors():
        loc = [str(part) for part in item.get("loc", ()) if part not in ("body", "query", "path")]
        message = item.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        details.append({"field": ".".join(loc), "message": message})
    logger.warning(f"Validation error occurred: {details}")
    return error(400, "Validation failed", details)


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return error(404, f"Can't find {request.url.path} on this server!")
    return error(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.error(f"Unexpected error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    stack = None
    if settings.environment.lower() == "development":
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return error(500, _public_message(500, str(exc) or "An unexpected error occurred."), stack=stack)


# ============================================================================
# HEALTH
# ============================================================================

@app.get("/")
async def root():
    """Health check endpoint."""
    return success(200, f"{SERVICE_NAME} is running", {
        "service": SERVICE_NAME,
        "version": VERSION,
        "timestamp": datetime.now().isoformat(),
    })


@app.get("/health")
async def health():
    if not ping_database():
        return error(503, "Database is unreachable.")
    return success(200, "Healthy", {"database": "ok", "timestamp": datetime.now().isoformat()})


api = APIRouter(prefix="/api")


# ============================================================================
# SCHEDULER
# ============================================================================

@api.post("/scheduler/start-daily-job")
async def start_daily_job(services: Services = Depends(get_services)):
    """Run the outreach job now, in the background."""
    job_id = services.runner.submit()
    return success(202, "Daily lead outreach job initiated in the background.", {"jobId": job_id})


@api.get("/scheduler/status")
async def scheduler_status(services: Services = Depends(get_services)):
    quota = services.quota.snapshot()
    last_job = services.jobs.latest(JobType.MESSAGING)
    next_run = services.scheduler.next_run
    return success(200, "Scheduler status retrieved.", {
        "schedulerStatus": services.scheduler.status().value,
        "dailyLeadsSentToday": quota["count"],
        "dailyLimit": quota["limit"],
        "lastDailyJob": camel(last_job) if last_job else None,
        "nextRun": next_run.isoformat() if next_run else None,
    })


@api.post("/scheduler/stop")
async def stop_scheduler(services: Services = Depends(get_services)):
    if services.scheduler.stop():
        return success(200, "Daily lead scheduler stopped.")
    return success(200, "Daily lead scheduler was not running.")


@api.post("/scheduler/start")
async def start_scheduler(services: Services = Depends(get_services)):
    if services.scheduler.start():
        return success(200, "Daily lead scheduler started.")
    return success(200, "Daily lead scheduler is already running.")


# ============================================================================
# MESSAGING
# ============================================================================

def _whatsapp_text_messages(payload: Dict[str, Any]) -> List[Tuple[str, str, Optional[str]]]:
    """Pull (sender, body, message id) out of a WhatsApp Cloud API webhook payload."""
    found = []
    for entry in payload.get("entry") or []:
        for change in entry.get("changes") or []:
            for message in (change.get("value") or {}).get("messages") or []:
                if message.get("type") != "text":
                    continue
                sender = message.get("from", "")
                body = (message.get("text") or {}).get("body", "")
                if sender and body:
                    found.append((sender, body, message.get("id")))
    return found


async def _handle_whatsapp_messages(services: Services, messages: List[Tuple[str, str, Optional[str]]]):
    for sender, body, message_id in messages:
        try:
            await services.replies.handle_incoming(MessageChannel.WHATSAPP, sender, body, message_id)
        except LeadBotError as e:
            logger.error(f"Failed to handle WhatsApp message {message_id} from {sender}: {e.message}")


@api.post("/messaging/send")
async def send_message(request: SendMessageRequest, services: Services = Depends(get_services)):
    result = await services.messaging.send_to_lead(
        request.lead_id, request.channel, request.template_id, request.variables
    )
    return success(200, "Message sent successfully.", result)


@api.get("/messaging/whatsapp/status")
async def whatsapp_status(services: Services = Depends(get_services)):
    ready = services.dispatcher.is_ready(MessageChannel.WHATSAPP)
    return success(200, "WhatsApp client status retrieved.", {"status": "ready" if ready else "not_ready"})


@api.get("/messaging/whatsapp/webhook")
async def verify_whatsapp_webhook(
    mode: str = Query("", alias="hub.mode"),
    token: str = Query("", alias="hub.verify_token"),
    challenge: str = Query("", alias="hub.challenge"),
):
    if mode == "subscribe" and settings.whatsapp_verify_token and token == settings.whatsapp_verify_token:
        logger.info("WhatsApp webhook verified")
        return PlainTextResponse(challenge)
    logger.warning("WhatsApp webhook verification failed")
    return error(403, "Webhook verification failed.")


@api.post("/messaging/whatsapp/webhook")
async def receive_whatsapp_webhook(background_tasks: BackgroundTasks,
                                   payload: Dict[str, Any] = Body(...),
                                   services: Services = Depends(get_services)):
    messages = _whatsapp_text_messages(payload)
    if messages:
        background_tasks.add_task(_handle_whatsapp_messages, services, messages)
    return success(200, "Webhook received.", {"received": len(messages)})


@api.post("/messaging/email/inbound")
async def receive_email(request: EmailInboundRequest, services: Services = Depends(get_services)):
    _, address = parseaddr(request.sender)
    result = await services.replies.handle_incoming(
        MessageChannel.EMAIL, address or request.sender, request.text, request.message_id
    )
    return success(200, "Inbound email processed.", result)


# ============================================================================
# LEADS
# ============================================================================

@api.get("/leads")
async def list_leads(
    status: Optional[LeadStatus] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    services: Services = Depends(get_services),
):
    """Get paginated list of leads, newest first."""
    leads = services.leads.list(status=status.value if status else None, limit=limit, offset=offset)
    return success(200, "Leads retrieved.", {
        "leads": [camel(lead) for lead in leads],
        "pagination": {"limit": limit, "offset": offset, "count": len(leads)},
    })


@api.get("/leads/{lead_id}")
async def get_lead(lead_id: str, services: Services = Depends(get_services)):
    lead = services.leads.get(lead_id)
    if lead is None:
        raise NotFoundError("Lead not found.")
    return success(200, "Lead retrieved.", camel(lead))


@api.post("/leads")
async def create_lead(request: LeadCreateRequest, services: Services = Depends(get_services)):
    lead = services.leads.create(request)
    logger.info(f"Lead created: {lead.id}")
    return success(201, "Lead created successfully.", camel(lead))


@api.put("/leads/{lead_id}")
async def update_lead(lead_id: str, request: LeadUpdateRequest, services: Services = Depends(get_services)):
    lead = services.leads.update_one(lead_id, request.model_dump(exclude_unset=True))
    if lead is None:
        raise NotFoundError("Lead not found.")
    return success(200, "Lead updated successfully.", camel(lead))


@api.delete("/leads/{lead_id}")
async def delete_lead(lead_id: str, services: Services = Depends(get_services)):
    if not services.leads.delete(lead_id):
        raise NotFoundError("Lead not found.")
    logger.info(f"Lead deleted: {lead_id}")
    return success(200, "Lead deleted successfully.")


# ============================================================================
# SCRAPER
# ============================================================================

@api.post("/scraper/start")
async def start_scraper(request: ScrapeRequest, services: Services = Depends(get_services)):
    job_id = services.scraper.submit(request.sources, request.keywords, request.location, request.limit)
    return success(202, "Scraping job initiated.", {"jobId": job_id, "status": "in_progress"})


@api.get("/scraper/status/{job_id}")
async def scraper_status(job_id: str, services: Services = Depends(get_services)):
    job = services.jobs.get(job_id)
    if job is None or job.job_type != JobType.SCRAPER:
        raise NotFoundError("Scraping job not found.")
    return success(200, "Scraping job status retrieved.", camel(job))


@api.get("/scraper/jobs")
async def scraper_jobs(services: Services = Depends(get_services)):
    jobs = services.jobs.recent(JobType.SCRAPER, limit=20)
    return success(200, "Scraping jobs retrieved.", {"jobs": [camel(job) for job in jobs], "sources": list(SOURCES)})


# ============================================================================
# AI
# ============================================================================

def _require_lead(services: Services, lead_id: str):
    lead = services.leads.get(lead_id)
    if lead is None:
        raise NotFoundError("Lead not found.")
    return lead


@api.post("/ai/generate-message")
async def generate_message(request: GenerateMessageRequest, services: Services = Depends(get_services)):
    lead = _require_lead(services, request.lead_id)
    history = services.responses.history(lead.id)
    message = await services.composer.personalize(lead, request.context, request.purpose, history)
    return success(200, "AI message generated successfully.", {"leadId": lead.id, "message": message})


@api.post("/ai/summarize-conversation")
async def summarize_conversation(request: SummarizeRequest, services: Services = Depends(get_services)):
    lead = _require_lead(services, request.lead_id)
    turns = [(turn.sender, turn.message) for turn in request.conversation_history]
    summary_text, key_points = await services.composer.summarize(lead, turns)
    summary = services.summaries.upsert(lead.id, summary_text, key_points)
    return success(200, "Conversation summarized successfully.", camel(summary))


@api.post("/ai/extract-key-points")
async def extract_key_points(request: ExtractKeyPointsRequest, services: Services = Depends(get_services)):
    key_points = await services.composer.extract_key_points(request.text)
    return success(200, "Key points extracted successfully.", {"keyPoints": key_points})


app.include_router(api)


# ============================================================================
# SERVER STARTUP
# ============================================================================

def start_server(host: str = "0.0.0.0", port: int = 3000):
    """Start the API server."""
    logger.info(f"Starting {SERVICE_NAME} on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    start_server(
        host=settings.api_host,
        port=settings.api_port
    )
