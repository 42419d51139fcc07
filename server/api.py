"""
FastAPI Backend API Module

Exposes the session decision protocol over REST: create a session, stream
keystroke timings and factor toggles into it, submit credentials, and run
the step-up challenge. Every decision is written to the SQLite audit trail.
CORS is enabled so a browser login surface can call the API directly.

Build the app with create_app(); uvicorn runs it via
`uvicorn server.api:create_app --factory`.
"""

import json
import time
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session
import logging

from engine.auth_session import AuthSession
from engine.errors import (
    AuthFlowError,
    AuthenticationError,
    ChallengeError,
    ChannelError,
    InputError,
    SessionCancelled,
    StateError,
)
from server.challenge_channel import SimulatedChallengeChannel
from server.credential_validator import InMemoryCredentialValidator
from server.database import (
    SQLALCHEMY_DATABASE_URL,
    DecisionRecord,
    get_session_decisions,
    make_session_factory,
)
from server.registry import SessionRegistry
from shared.models import (
    AnalysisReport,
    AuthState,
    CodeSubmission,
    ErrorResponse,
    FactorUpdate,
    KeystrokeBatch,
    LoginRequest,
    SessionSnapshot,
)

logger = logging.getLogger(__name__)

STATUS_CODES = {
    InputError: 400,
    AuthenticationError: 401,
    ChallengeError: 403,
    StateError: 409,
    SessionCancelled: 409,
    ChannelError: 503,
}


def to_http_error(exc: AuthFlowError) -> HTTPException:
    """Map an auth flow failure to an HTTPException with an ErrorResponse body."""
    body = ErrorResponse(
        error=exc.code,
        message=str(exc),
        attempts_remaining=getattr(exc, "attempts_remaining", None),
    )
    return HTTPException(status_code=STATUS_CODES.get(type(exc), 400), detail=body.model_dump())


def record_decision(db: Session, session: AuthSession) -> DecisionRecord:
    """Append the session's current outcome to the audit trail."""
    record = DecisionRecord(
        session_id=session.session_id,
        identifier=session.identifier,
        state=session.state.value,
        trust_score=session.trust_score,
        factors=session.factors.model_dump_json(),
        timestamp=time.time(),
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def close_if_granted(registry: SessionRegistry, session: AuthSession) -> None:
    """Drop a session that reached a terminal success state from the live store."""
    if session.access_granted:
        registry.discard(session.session_id)


def create_app(
    registry: Optional[SessionRegistry] = None,
    database_url: str = SQLALCHEMY_DATABASE_URL,
    allowed_origins: Optional[List[str]] = None,
) -> FastAPI:
    """
    Build the API.

    Args:
        registry: Live session store; defaults to the bundled in-memory
                  validator and a simulated challenge channel per session.
        database_url: SQLAlchemy URL of the decision audit trail.
        allowed_origins: CORS origins of the login surface.
    """
    if registry is None:
        registry = SessionRegistry(InMemoryCredentialValidator(), SimulatedChallengeChannel)

    SessionLocal = make_session_factory(database_url)

    app = FastAPI(title="ZeroTrust Gate API", version="1.0.0")

    # CORS – allow the login surface origin (adjust in production)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.registry = registry

    def get_db():
        """Dependency to obtain a database session."""
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def get_session(session_id: str) -> AuthSession:
        """Dependency resolving the path's session id to a live session."""
        session = registry.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"Unknown session {session_id}")
        return session

    @app.post("/sessions", response_model=SessionSnapshot, status_code=201)
    async def create_session():
        return registry.create().snapshot()

    @app.get("/sessions/{session_id}", response_model=SessionSnapshot)
    async def read_session(session: AuthSession = Depends(get_session)):
        return session.snapshot()

    @app.delete("/sessions/{session_id}")
    async def delete_session(session_id: str):
        if not registry.discard(session_id):
            raise HTTPException(status_code=404, detail=f"Unknown session {session_id}")
        return {"deleted": True}

    @app.get("/sessions/{session_id}/summary")
    async def session_summary(session: AuthSession = Depends(get_session)):
        return registry.get_session_summary(session.session_id)

    @app.post("/sessions/{session_id}/keystrokes", response_model=SessionSnapshot)
    async def record_keystrokes(payload: KeystrokeBatch, session: AuthSession = Depends(get_session)):
        """
        Feed raw key press/release timings captured on the password field.
        """
        try:
            for event in payload.events:
                session.record_keystroke(event)
        except AuthFlowError as e:
            raise to_http_error(e)
        return session.snapshot()

    @app.put("/sessions/{session_id}/factors", response_model=SessionSnapshot)
    async def update_factors(payload: FactorUpdate, session: AuthSession = Depends(get_session)):
        session.set_factors(**payload.model_dump())
        return session.snapshot()

    @app.post("/sessions/{session_id}/factors/{name}/toggle", response_model=SessionSnapshot)
    async def toggle_factor(name: str, session: AuthSession = Depends(get_session)):
        try:
            session.toggle_factor(name)
        except AuthFlowError as e:
            raise to_http_error(e)
        return session.snapshot()

    @app.post("/sessions/{session_id}/login", response_model=AnalysisReport)
    async def login(payload: LoginRequest,
                    session: AuthSession = Depends(get_session),
                    db: Session = Depends(get_db)):
        """
        Validate credentials and run the analysis phase.

        Steps:
        1. Reject missing or too-short credentials, then mismatches.
        2. Score the session and route it to approval or a challenge.
        3. Record the decision in the audit trail.
        4. Release an approved session; its outcome lives on in the audit trail.
        """
        try:
            report = session.submit_credentials(payload.identifier, payload.secret)
        except AuthFlowError as e:
            raise to_http_error(e)
        record_decision(db, session)
        close_if_granted(registry, session)
        return report

    @app.post("/sessions/{session_id}/challenge/code", response_model=SessionSnapshot)
    async def submit_code(payload: CodeSubmission,
                          session: AuthSession = Depends(get_session),
                          db: Session = Depends(get_db)):
        try:
            session.submit_code(payload.code)
        except AuthFlowError as e:
            raise to_http_error(e)
        record_decision(db, session)
        snapshot = session.snapshot()
        close_if_granted(registry, session)
        return snapshot

    @app.post("/sessions/{session_id}/challenge/push", response_model=SessionSnapshot)
    async def request_push(session: AuthSession = Depends(get_session)):
        try:
            session.request_push_approval()
        except AuthFlowError as e:
            raise to_http_error(e)
        return session.snapshot()

    @app.get("/sessions/{session_id}/challenge/push", response_model=SessionSnapshot)
    async def poll_push(session: AuthSession = Depends(get_session),
                        db: Session = Depends(get_db)):
        try:
            session.poll_push_approval()
        except AuthFlowError as e:
            raise to_http_error(e)
        snapshot = session.snapshot()
        if session.state == AuthState.GRANTED:
            record_decision(db, session)
            close_if_granted(registry, session)
        return snapshot

    @app.post("/sessions/{session_id}/challenge/push/approve")
    async def simulate_push_approval(session: AuthSession = Depends(get_session)):
        """
        Simulation control: approve the pending push as the user's device would.
        Only available with the simulated channel.
        """
        channel = registry.channel_for(session.session_id)
        if not isinstance(channel, SimulatedChallengeChannel):
            raise HTTPException(status_code=409, detail="Channel does not support simulated approval")
        channel.approve()
        return {"approved": True}

    @app.post("/sessions/{session_id}/reset", response_model=SessionSnapshot)
    async def reset_session(session: AuthSession = Depends(get_session)):
        session.reset()
        return session.snapshot()

    @app.get("/sessions/{session_id}/decisions")
    async def list_decisions(session_id: str, db: Session = Depends(get_db)):
        records = get_session_decisions(db, session_id)
        return [
            {
                "id": r.id,
                "state": r.state,
                "trust_score": r.trust_score,
                "identifier": r.identifier,
                "factors": json.loads(r.factors),
                "timestamp": r.timestamp,
            }
            for r in records
        ]

    @app.get("/health")
    async def health_check():
        """Simple health endpoint."""
        return {"status": "healthy", "active_sessions": len(registry)}

    return app
