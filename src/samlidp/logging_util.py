LOG_FMT = "[{id}] {message}"


def get_session_id(state):
    session_id = getattr(state, "session_id", None) or "UNKNOWN"
    return session_id
