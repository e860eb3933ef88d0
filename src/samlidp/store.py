"""
Artifact store: artifact -> (issuer, relying party, message, expiry).

An artifact can be dereferenced exactly once. ``take_all`` looks up, validates
and removes a set of artifacts as one atomic step, so that two concurrent
resolutions of the same artifact can not both succeed.
"""
import logging
import threading
import time

from saml2.samlp import STATUS_REQUESTER
from saml2.samlp import STATUS_RESPONDER
from sqlalchemy import Column
from sqlalchemy import Integer
from sqlalchemy import String
from sqlalchemy import Text
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

from .exception import ArtifactResolutionError
from .exception import SAMLIdPConfigurationError


logger = logging.getLogger(__name__)


class ArtifactMapEntry(object):
    """
    A SAML message waiting to be picked up with its artifact.
    """

    def __init__(self, artifact, issuer_id, relying_party_id, message, expiration):
        """
        :type artifact: str
        :type issuer_id: str
        :type relying_party_id: str
        :type message: str
        :type expiration: int

        :param artifact: the artifact string
        :param issuer_id: entity id of the IdP that issued the artifact
        :param relying_party_id: entity id of the SP the artifact was issued to
        :param message: the serialized SAML message
        :param expiration: epoch seconds after which the artifact is void
        """
        self.artifact = artifact
        self.issuer_id = issuer_id
        self.relying_party_id = relying_party_id
        self.message = message
        self.expiration = expiration

    def is_expired(self, now=None):
        now = time.time() if now is None else now
        return now >= self.expiration

    def to_dict(self):
        return {
            "artifact": self.artifact,
            "issuer_id": self.issuer_id,
            "relying_party_id": self.relying_party_id,
            "message": self.message,
            "expiration": self.expiration,
        }


def validate_entry(artifact, entry, issuer_id, relying_party_id, now=None):
    """
    Checks an entry for use by a relying party, in order: known and
    unexpired, issued by this IdP, issued to the requester.

    :raise ArtifactResolutionError: on the first failed check
    """
    if entry is None or entry.is_expired(now):
        raise ArtifactResolutionError("Unknown artifact {}".format(artifact), status_code=STATUS_RESPONDER)
    if entry.issuer_id != issuer_id:
        raise ArtifactResolutionError(
            "Artifact {} was issued by {}, not by {}".format(artifact, entry.issuer_id, issuer_id),
            status_code=STATUS_RESPONDER,
        )
    if entry.relying_party_id != relying_party_id:
        raise ArtifactResolutionError(
            "Artifact {} was not issued to {}".format(artifact, relying_party_id),
            status_code=STATUS_REQUESTER,
        )
    return entry


class ArtifactStore(object):
    def __init__(self, config):
        self.db_config = config or {}

    def put(self, entry):
        raise NotImplementedError()

    def get(self, artifact):
        raise NotImplementedError()

    def remove(self, artifact):
        raise NotImplementedError()

    def take_all(self, artifacts, issuer_id, relying_party_id, now=None):
        """
        Validates every artifact and, only if all of them pass, removes them
        and returns their entries in request order.

        :type artifacts: list[str]
        :type issuer_id: str
        :type relying_party_id: str
        :type now: float | None
        :rtype: list[ArtifactMapEntry]
        :raise ArtifactResolutionError: if any artifact fails validation;
            nothing is removed in that case
        """
        raise NotImplementedError()


class ArtifactStoreInMemory(ArtifactStore):
    """
    In-memory artifact store
    """

    def __init__(self, config=None):
        super().__init__(config)
        self.entries = {}
        self._lock = threading.Lock()

    def put(self, entry):
        with self._lock:
            self.entries[entry.artifact] = entry

    def get(self, artifact):
        with self._lock:
            return self.entries.get(artifact)

    def remove(self, artifact):
        with self._lock:
            self.entries.pop(artifact, None)

    def take_all(self, artifacts, issuer_id, relying_party_id, now=None):
        with self._lock:
            entries = []
            for artifact in artifacts:
                entry = self.entries.get(artifact)
                if entry is not None and entry.is_expired(now):
                    del self.entries[artifact]
                    entry = None
                entries.append(validate_entry(artifact, entry, issuer_id, relying_party_id, now))
            for entry in entries:
                self.entries.pop(entry.artifact, None)
            return entries


Base = declarative_base()


class ArtifactRecord(Base):
    __tablename__ = "artifact_map"
    artifact = Column(String(512), primary_key=True)
    issuer_id = Column(String(1024))
    relying_party_id = Column(String(1024))
    message = Column(Text)
    expiration = Column(Integer)

    def to_entry(self):
        return ArtifactMapEntry(
            artifact=self.artifact,
            issuer_id=self.issuer_id,
            relying_party_id=self.relying_party_id,
            message=self.message,
            expiration=self.expiration,
        )


def database_url(db_config):
    """
    Builds a SQLAlchemy URL from a 'url' key or from PostgreSQL connection
    parameters.
    """
    if "url" in db_config:
        return db_config["url"]
    try:
        return "postgresql://{user}:{password}@{host}:{port}/{db_name}".format(
            user=db_config["user"],
            password=db_config["password"],
            host=db_config["host"],
            port=db_config["port"],
            db_name=db_config["db_name"],
        )
    except KeyError as e:
        raise SAMLIdPConfigurationError("Missing database setting {}".format(e)) from e


class ArtifactStoreSQL(ArtifactStore):
    """
    SQL artifact store
    """

    def __init__(self, config):
        super().__init__(config)
        engine = create_engine(database_url(self.db_config))
        Base.metadata.create_all(engine)
        self.Session = sessionmaker(bind=engine)

    def put(self, entry):
        session = self.Session()
        session.merge(ArtifactRecord(**entry.to_dict()))
        session.commit()
        session.close()

    def get(self, artifact):
        session = self.Session()
        record = session.get(ArtifactRecord, artifact)
        entry = record.to_entry() if record else None
        session.close()
        return entry

    def remove(self, artifact):
        session = self.Session()
        session.query(ArtifactRecord).filter(ArtifactRecord.artifact == artifact).delete()
        session.commit()
        session.close()

    def take_all(self, artifacts, issuer_id, relying_party_id, now=None):
        session = self.Session()
        try:
            records = {
                record.artifact: record
                for record in session.query(ArtifactRecord)
                .filter(ArtifactRecord.artifact.in_(artifacts))
                .with_for_update()
                .all()
            }
            entries = [
                validate_entry(artifact, records[artifact].to_entry() if artifact in records else None,
                               issuer_id, relying_party_id, now)
                for artifact in artifacts
            ]
            deleted = (
                session.query(ArtifactRecord)
                .filter(ArtifactRecord.artifact.in_(artifacts))
                .delete(synchronize_session=False)
            )
            if deleted != len(set(artifacts)):
                # another resolver removed an entry between our read and delete
                session.rollback()
                raise ArtifactResolutionError("Unknown artifact", status_code=STATUS_RESPONDER)
            session.commit()
            return entries
        except ArtifactResolutionError:
            session.rollback()
            raise
        finally:
            session.close()
