import logging
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from lexicard.application.config import resolve_config
from lexicard.application.factory import Services, build_services
from lexicard.application.queue_builder import ReviewSession
from lexicard.application.scheduler import format_interval
from lexicard.consts import VERSION
from lexicard.domain.exceptions import CardNotFoundError, InvalidStateError, StorageError
from lexicard.domain.models import Card, Rating
from lexicard.domain.scope import Scope

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("lexicard.server")

_services: Services | None = None
_sessions: dict[str, ReviewSession] = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"lexicard server v{VERSION} starting up...")
    yield
    # Shutdown
    logger.info("lexicard server shutting down...")
    await reset_services()


app = FastAPI(
    title="lexicard server",
    description="HTTP API for scoped vocabulary review.",
    version=VERSION,
    lifespan=lifespan,
)


async def get_services() -> Services:
    """Services are built once, on first use, from the resolved config."""
    global _services
    if _services is None:
        _services = await build_services(resolve_config())
    return _services


async def reset_services() -> None:
    """Close the store and forget open sessions."""
    global _services
    if _services is not None:
        await _services.store.close()
        _services = None
    _sessions.clear()


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"Storage failure on {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(InvalidStateError)
async def invalid_state_handler(request: Request, exc: InvalidStateError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(CardNotFoundError)
async def card_not_found_handler(request: Request, exc: CardNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


start_time = time.time()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


class CardResponse(BaseModel):
    id: str
    word: str
    scope: str
    repetitions: int
    interval: int
    ease_factor: float
    due_date: str
    last_reviewed: str | None
    status: str
    due_state: str | None = None

    @classmethod
    def from_card(cls, card: Card, due_state: str | None = None) -> "CardResponse":
        return cls(
            id=card.id,
            word=card.word,
            scope=card.scope_key,
            repetitions=card.repetitions,
            interval=card.interval,
            ease_factor=card.ease_factor,
            due_date=card.due_date.isoformat(),
            last_reviewed=card.last_reviewed.isoformat() if card.last_reviewed else None,
            status=card.status.value,
            due_state=due_state,
        )


class SessionResponse(BaseModel):
    session_id: str
    scope: str
    new_count: int
    review_count: int
    reviewed: int
    remaining: int
    finished: bool
    card: CardResponse | None = None


def _parse_scope(text: str | None) -> Scope:
    try:
        return Scope.parse(text)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


def _session_response(session: ReviewSession) -> SessionResponse:
    stats = session.stats()
    current = session.current
    return SessionResponse(
        session_id=session.id,
        scope=session.scope.key,
        new_count=stats.new_count,
        review_count=stats.review_count,
        reviewed=stats.reviewed,
        remaining=stats.remaining,
        finished=session.is_finished(),
        card=CardResponse.from_card(current) if current is not None else None,
    )


def _get_session(session_id: str) -> ReviewSession:
    session = _sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown review session: {session_id}")
    return session


def _release_if_finished(session: ReviewSession) -> None:
    # A finished session can hand out nothing more; later calls get 404
    if session.is_finished():
        _sessions.pop(session.id, None)


# ---------------------------------------------------------------------------
# Cards
# ---------------------------------------------------------------------------


class AddCardRequest(BaseModel):
    word: str
    scope: str | None = None


class AddCardResponse(BaseModel):
    created: bool
    card: CardResponse


@app.post("/cards", response_model=AddCardResponse)
async def add_card(req: AddCardRequest, services: Services = Depends(get_services)):
    """Add a word to a scope; an existing card is returned unchanged."""
    scope = _parse_scope(req.scope)
    try:
        result = await services.lifecycle.add(req.word, scope)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return AddCardResponse(created=result.created, card=CardResponse.from_card(result.card))


@app.get("/cards", response_model=list[CardResponse])
async def list_cards(scope: str | None = None, services: Services = Depends(get_services)):
    """Cards stored under exactly this scope, with their current due state."""
    target = _parse_scope(scope)
    cards = await services.store.get_by_scope([target.key])
    return [
        CardResponse.from_card(card, services.lifecycle.due_state(card).value)
        for card in sorted(cards, key=lambda c: c.word)
    ]


@app.get("/cards/{card_id:path}/preview")
async def preview_card(card_id: str, services: Services = Depends(get_services)):
    """Next interval for each rating, without changing the card."""
    card = await services.store.get(card_id)
    if card is None:
        raise CardNotFoundError(card_id)
    return {
        rating.name.lower(): {
            "interval": update.interval,
            "label": format_interval(update.interval),
            "due_date": update.due_date.isoformat(),
        }
        for rating, update in services.lifecycle.preview(card).items()
    }


# ---------------------------------------------------------------------------
# Review sessions
# ---------------------------------------------------------------------------


class OpenSessionRequest(BaseModel):
    scope: str | None = None


class RateRequest(BaseModel):
    rating: int | str


@app.post("/sessions", response_model=SessionResponse)
async def open_session(req: OpenSessionRequest, services: Services = Depends(get_services)):
    scope = _parse_scope(req.scope)
    session = await services.queue.open(scope)
    _sessions[session.id] = session
    return _session_response(session)


@app.post("/sessions/{session_id}/next", response_model=SessionResponse)
async def next_card(session_id: str):
    """Hand out the next card; `card` is null once the session is exhausted."""
    session = _get_session(session_id)
    session.next()
    _release_if_finished(session)
    return _session_response(session)


@app.post("/sessions/{session_id}/rate", response_model=SessionResponse)
async def rate_card(session_id: str, req: RateRequest, services: Services = Depends(get_services)):
    session = _get_session(session_id)
    try:
        rating = Rating.parse(req.rating)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    await services.lifecycle.rate_current(session, rating)
    _release_if_finished(session)
    return _session_response(session)


@app.delete("/sessions/{session_id}")
async def close_session(session_id: str):
    session = _sessions.pop(session_id, None)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown review session: {session_id}")
    session.close()
    return {"closed": True, "reviewed": session.reviewed}
