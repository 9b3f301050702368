from typing import Dict

from ..errors import SessionNotFoundError
from ..logging_config import set_metric
from ..models import SessionStatus
from .session import AnalysisSession

MAX_SESSIONS = 50

_sessions: Dict[str, AnalysisSession] = {}


def _evict_oldest() -> None:
    # dicts keep insertion order; never evict a session mid-analysis
    while len(_sessions) > MAX_SESSIONS:
        for sid, session in _sessions.items():
            if session.status is not SessionStatus.ANALYZING:
                del _sessions[sid]
                break
        else:
            return


def create_session() -> AnalysisSession:
    session = AnalysisSession()
    _sessions[session.session_id] = session
    _evict_oldest()
    set_metric("sessions_active", len(_sessions))
    return session


def get_session(session_id: str) -> AnalysisSession:
    session = _sessions.get(session_id)
    if session is None:
        raise SessionNotFoundError(f"Session not found: {session_id}")
    return session


def drop_session(session_id: str) -> None:
    _sessions.pop(session_id, None)
    set_metric("sessions_active", len(_sessions))


def clear_sessions() -> None:
    _sessions.clear()
    set_metric("sessions_active", 0)
