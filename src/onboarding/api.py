"""
Onboarding API Endpoints.

Exposes OnboardingSession over HTTP so a separate frontend can render the
flow. Every endpoint answers with the session view (the same contract the
in-process presentation layer gets).

Sessions are kept per user in a SessionRegistry attached to app.state;
each user gets their own storage namespace.
"""

import logging
from collections.abc import Callable

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from pydantic import BaseModel

from . import __version__
from .errors import StorageWriteError
from .loader import FlowDefinition
from .models import AnswerValue
from .session import OnboardingSession
from .storage import KeyValueStorage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/onboarding", tags=["onboarding"])

StorageFactory = Callable[[str], KeyValueStorage]


# =============================================================================
# Session registry
# =============================================================================


class SessionRegistry:
    """Started sessions keyed by user id."""

    def __init__(self, flow: FlowDefinition, storage_factory: StorageFactory):
        self.flow = flow
        self.storage_factory = storage_factory
        self._sessions: dict[str, OnboardingSession] = {}

    async def get_or_start(self, user_id: str) -> OnboardingSession:
        session = self._sessions.get(user_id)
        if session is None:
            session = OnboardingSession(
                self.flow.slides,
                self.storage_factory(user_id),
                self.flow.build_options(),
            )
            await session.start()
            self._sessions[user_id] = session
            logger.info(f"Started onboarding session for user {user_id}")
        return session

    def drop(self, user_id: str) -> None:
        self._sessions.pop(user_id, None)

    def __len__(self) -> int:
        return len(self._sessions)


def get_registry(request: Request) -> SessionRegistry:
    registry = getattr(request.app.state, "onboarding_sessions", None)
    if registry is None:
        raise HTTPException(status_code=500, detail="Onboarding is not configured")
    return registry


async def get_session(
    registry: SessionRegistry = Depends(get_registry),
    x_user_id: str = Header("local"),
) -> OnboardingSession:
    """Resolve the caller's session, starting it on first use."""
    if not x_user_id.strip():
        raise HTTPException(status_code=400, detail="X-User-Id header must not be empty")
    return await registry.get_or_start(x_user_id.strip())


# =============================================================================
# Request models
# =============================================================================


class AnswerRequest(BaseModel):
    """Held answer for the current slide."""
    value: AnswerValue = None


class ToggleRequest(BaseModel):
    """Option to select/deselect on a choice question."""
    option_id: str


class ActionResponse(BaseModel):
    """Result of next/back/skip: whether the flow moved, plus the new view."""
    moved: bool
    view: dict


def _storage_failure(session: OnboardingSession, e: StorageWriteError) -> HTTPException:
    logger.error(f"Onboarding storage failure: {e}")
    return HTTPException(status_code=500, detail=session.error or str(e))


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/state")
async def get_state(session: OnboardingSession = Depends(get_session)) -> dict:
    """Current view of the flow."""
    return session.view.to_dict()


@router.post("/answer")
async def set_answer(request: AnswerRequest, session: OnboardingSession = Depends(get_session)) -> dict:
    """Replace the held answer (not persisted until next)."""
    return session.set_answer(request.value).to_dict()


@router.post("/toggle")
async def toggle_option(request: ToggleRequest, session: OnboardingSession = Depends(get_session)) -> dict:
    """Toggle a choice option on the current question."""
    return session.toggle_option(request.option_id).to_dict()


@router.post("/next", response_model=ActionResponse)
async def next_slide(session: OnboardingSession = Depends(get_session)) -> ActionResponse:
    """Save the held answer and advance, completing on the last slide."""
    try:
        moved = await session.next()
    except StorageWriteError as e:
        raise _storage_failure(session, e)
    return ActionResponse(moved=moved, view=session.view.to_dict())


@router.post("/back", response_model=ActionResponse)
async def previous_slide(session: OnboardingSession = Depends(get_session)) -> ActionResponse:
    """Go back one slide."""
    moved = session.back()
    return ActionResponse(moved=moved, view=session.view.to_dict())


@router.post("/skip", response_model=ActionResponse)
async def skip_onboarding(session: OnboardingSession = Depends(get_session)) -> ActionResponse:
    """Skip the remainder of onboarding."""
    try:
        moved = await session.skip()
    except StorageWriteError as e:
        raise _storage_failure(session, e)
    return ActionResponse(moved=moved, view=session.view.to_dict())


@router.post("/reset")
async def reset_onboarding(session: OnboardingSession = Depends(get_session)) -> dict:
    """Wipe persisted progress and restart the flow."""
    try:
        view = await session.reset()
    except StorageWriteError as e:
        raise _storage_failure(session, e)
    return view.to_dict()


# =============================================================================
# App factory
# =============================================================================


def create_app(flow: FlowDefinition, storage_factory: StorageFactory) -> FastAPI:
    """Build a FastAPI app serving one onboarding flow."""
    app = FastAPI(title="Onboarding", version=__version__)
    app.state.onboarding_sessions = SessionRegistry(flow, storage_factory)
    app.include_router(router, prefix="/api")

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "slides": len(flow.slides)}

    return app
