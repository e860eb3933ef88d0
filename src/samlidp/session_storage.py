"""
Server side storage of IdP sessions and of the login contexts that bridge the
two legs of the SSO handshake.
"""
import logging
import threading
import time

from sqlalchemy import JSON
from sqlalchemy import Column
from sqlalchemy import String
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

from .internal import IdPSession
from .internal import LoginContext
from .store import database_url


logger = logging.getLogger(__name__)

LOGIN_CONTEXT_LIFETIME = 30 * 60
SESSION_LIFETIME = 8 * 60 * 60


class Storage:
    def __init__(self, config):
        self.db_config = config or {}


class SessionStorage(Storage):
    """
    In-memory storage

    Entries are dropped once older than their lifetime, counted from the last
    time they were stored. Lifetimes come from the ``login_context_lifetime``
    and ``session_lifetime`` settings, in seconds.
    """

    def __init__(self, config=None, clock=None):
        super().__init__(config)
        self.login_context_lifetime = int(self.db_config.get("login_context_lifetime", LOGIN_CONTEXT_LIFETIME))
        self.session_lifetime = int(self.db_config.get("session_lifetime", SESSION_LIFETIME))
        self.clock = clock or time.time
        # key -> (stored at, serialised entry)
        self.login_contexts = {}
        self.sessions = {}
        self._lock = threading.Lock()

    @staticmethod
    def _purge(entries, lifetime, now):
        expired = [key for key, (stored_at, _) in entries.items() if stored_at + lifetime <= now]
        for key in expired:
            del entries[key]
        return len(expired)

    def _live(self, entries, key, lifetime):
        stored = entries.get(key)
        if stored is None or stored[0] + lifetime <= self.clock():
            return None
        return stored[1]

    def store_login_context(self, conversation_id, login_context):
        now = self.clock()
        with self._lock:
            purged = self._purge(self.login_contexts, self.login_context_lifetime, now)
            self.login_contexts[conversation_id] = (now, login_context.to_dict())
        if purged:
            logger.debug("Purged {} expired login contexts".format(purged))

    def get_login_context(self, conversation_id):
        """
        Reads a login context without consuming it.

        :rtype: samlidp.internal.LoginContext | None
        """
        with self._lock:
            data = self._live(self.login_contexts, conversation_id, self.login_context_lifetime)
        return LoginContext.from_dict(data) if data is not None else None

    def pop_login_context(self, conversation_id):
        """
        Reads and removes a login context in one step.

        :rtype: samlidp.internal.LoginContext | None
        """
        with self._lock:
            data = self._live(self.login_contexts, conversation_id, self.login_context_lifetime)
            self.login_contexts.pop(conversation_id, None)
        return LoginContext.from_dict(data) if data is not None else None

    def store_session(self, idp_session):
        now = self.clock()
        with self._lock:
            purged = self._purge(self.sessions, self.session_lifetime, now)
            self.sessions[idp_session.session_id] = (now, idp_session.to_dict())
        if purged:
            logger.debug("Purged {} expired IdP sessions".format(purged))

    def get_session(self, session_id):
        """
        :rtype: samlidp.internal.IdPSession | None
        """
        with self._lock:
            data = self._live(self.sessions, session_id, self.session_lifetime)
        return IdPSession.from_dict(data) if data is not None else None

    def get_session_by_principal(self, principal_name):
        with self._lock:
            self._purge(self.sessions, self.session_lifetime, self.clock())
            matches = [data for _, data in self.sessions.values() if data.get("principal_name") == principal_name]
        if not matches:
            return None
        latest = max(matches, key=lambda data: data.get("created") or 0)
        return IdPSession.from_dict(latest)

    def delete_session(self, session_id):
        with self._lock:
            self.sessions.pop(session_id, None)


Base = declarative_base()


class LoginContextRecord(Base):
    __tablename__ = "login_context"
    conversation_id = Column(String(255), primary_key=True)
    login_context = Column(JSON)


class IdPSessionRecord(Base):
    __tablename__ = "idp_session"
    session_id = Column(String(255), primary_key=True)
    principal_name = Column(String(1024), index=True)
    idp_session = Column(JSON)


class SessionStorageSQL(Storage):
    """
    SQL storage
    """

    def __init__(self, config):
        super().__init__(config)
        engine = create_engine(database_url(self.db_config))
        Base.metadata.create_all(engine)
        self.Session = sessionmaker(bind=engine)

    def store_login_context(self, conversation_id, login_context):
        session = self.Session()
        session.merge(LoginContextRecord(conversation_id=conversation_id,
                                         login_context=login_context.to_dict()))
        session.commit()
        session.close()

    def get_login_context(self, conversation_id):
        session = self.Session()
        record = session.get(LoginContextRecord, conversation_id)
        data = record.login_context if record else None
        session.close()
        return LoginContext.from_dict(data) if data is not None else None

    def pop_login_context(self, conversation_id):
        session = self.Session()
        try:
            record = session.get(LoginContextRecord, conversation_id)
            if record is None:
                return None
            data = record.login_context
            deleted = (
                session.query(LoginContextRecord)
                .filter(LoginContextRecord.conversation_id == conversation_id)
                .delete(synchronize_session=False)
            )
            session.commit()
        finally:
            session.close()

        if not deleted:
            # consumed by a concurrent request
            return None
        return LoginContext.from_dict(data)

    def store_session(self, idp_session):
        session = self.Session()
        session.merge(IdPSessionRecord(session_id=idp_session.session_id,
                                       principal_name=idp_session.principal_name,
                                       idp_session=idp_session.to_dict()))
        session.commit()
        session.close()

    def get_session(self, session_id):
        session = self.Session()
        record = session.get(IdPSessionRecord, session_id)
        data = record.idp_session if record else None
        session.close()
        return IdPSession.from_dict(data) if data is not None else None

    def get_session_by_principal(self, principal_name):
        session = self.Session()
        records = session.query(IdPSessionRecord).filter(
            IdPSessionRecord.principal_name == principal_name).all()
        sessions = [IdPSession.from_dict(record.idp_session) for record in records]
        session.close()
        if not sessions:
            return None
        return max(sessions, key=lambda s: s.created or 0)

    def delete_session(self, session_id):
        session = self.Session()
        session.query(IdPSessionRecord).filter(IdPSessionRecord.session_id == session_id).delete()
        session.commit()
        session.close()
