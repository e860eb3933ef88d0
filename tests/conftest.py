import pytest
from saml2 import BINDING_HTTP_ARTIFACT
from saml2 import BINDING_HTTP_POST
from saml2 import BINDING_PAOS
from saml2.saml import NAMEID_FORMAT_PERSISTENT
from saml2.saml import NAMEID_FORMAT_TRANSIENT

from samlidp.assertion import AssertionBuilder
from samlidp.attribute_authority import AttributeAuthority
from samlidp.attribute_authority import PolicyAttributeFilter
from samlidp.attribute_authority import StaticAttributeResolver
from samlidp.audit import AuditLogger
from samlidp.codec import BindingCodecRegistry
from samlidp.context import RequestContext
from samlidp.crypto_policy import CryptoPolicyEngine
from samlidp.endpoint_selector import EndpointSelector
from samlidp.metadata import InMemoryMetadataProvider
from samlidp.profiles.base import ProfileServices
from samlidp.relying_party import RelyingPartyConfigurationManager
from samlidp.session_storage import SessionStorage
from samlidp.state import State
from samlidp.store import ArtifactStoreInMemory
from .util import FakeClock
from .util import FakeEncrypter
from .util import FakeSigner
from .util import SequentialIds

BASE_URL = "https://idp.example.org"
IDP_ENTITY_ID = "https://idp.example.org/idp"
SP_ENTITY_ID = "https://sp.example"
ECP_SP_ENTITY_ID = "https://ecp-sp.example"
UNKNOWN_SP_ENTITY_ID = "https://unknown-sp.example"

SP_POST_ACS = "https://sp.example/acs/post"
SP_ARTIFACT_ACS = "https://sp.example/acs/artifact"
ECP_SP_PAOS_ACS = "https://ecp-sp.example/acs/paos"

EPPN_NAME = "urn:oid:1.3.6.1.4.1.5923.1.1.1.6"
MAIL_NAME = "urn:oid:0.9.2342.19200300.100.1.3"
UID_NAME = "urn:oid:0.9.2342.19200300.100.1.1"

SIGNING_CREDENTIAL = {"cert_file": "idp-signing.crt", "key_file": "idp-signing.key"}


@pytest.fixture
def metadata_config():
    return {
        SP_ENTITY_ID: {
            "assertion_consumer_service": [
                {"location": SP_POST_ACS, "binding": BINDING_HTTP_POST, "index": 0, "is_default": True},
                {"location": SP_ARTIFACT_ACS, "binding": BINDING_HTTP_ARTIFACT, "index": 1},
            ],
            "encryption_certificates": ["MIICsDCCAhmgAwIBAgIJAJrzqSSwmDY9"],
        },
        ECP_SP_ENTITY_ID: {
            "assertion_consumer_service": [
                {"location": ECP_SP_PAOS_ACS, "binding": BINDING_PAOS, "index": 0},
            ],
        },
    }


@pytest.fixture
def relying_parties_config():
    return {
        "default": {"profiles": {}},
        SP_ENTITY_ID: {
            "signing_credential": SIGNING_CREDENTIAL,
            "profiles": {
                "saml2_sso": {"assertion_lifetime": 300},
                "shibboleth_sso": {},
                "saml2_attribute_query": {},
                "saml2_artifact_resolution": {},
                "saml1_artifact_resolution": {},
            },
        },
        ECP_SP_ENTITY_ID: {
            "signing_credential": SIGNING_CREDENTIAL,
            "profiles": {"saml2_ecp": {}},
        },
    }


@pytest.fixture
def attributes_config():
    return {
        "resolver": {
            "definitions": {
                "uid": {
                    "encoders": [
                        {"type": "name_id", "format": NAMEID_FORMAT_PERSISTENT},
                        {"type": "string", "name": UID_NAME, "friendly_name": "uid"},
                    ]
                },
                "eduPersonPrincipalName": {
                    "encoders": [
                        {"type": "string", "name": EPPN_NAME, "friendly_name": "eduPersonPrincipalName"},
                    ]
                },
                "mail": {"encoders": [{"type": "string", "name": MAIL_NAME, "friendly_name": "mail"}]},
                "transientId": {
                    "transient": True,
                    "encoders": [{"type": "name_id", "format": NAMEID_FORMAT_TRANSIENT}],
                },
            },
            "principals": {
                "alice": {
                    "uid": ["alice"],
                    "eduPersonPrincipalName": ["alice@example.org"],
                    "mail": ["alice@example.org"],
                },
                "bob": {
                    "uid": ["bob"],
                    "eduPersonPrincipalName": ["bob@example.org"],
                },
            },
        },
        "release_policy": {
            "default": {"allowed": []},
            SP_ENTITY_ID: {"allowed": ["eduPersonPrincipalName", "transientId"]},
            ECP_SP_ENTITY_ID: {"allowed": ["eduPersonPrincipalName", "transientId"]},
        },
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def signer():
    return FakeSigner()


@pytest.fixture
def encrypter():
    return FakeEncrypter()


@pytest.fixture
def services(metadata_config, relying_parties_config, attributes_config, clock, signer, encrypter):
    artifact_store = ArtifactStoreInMemory()
    codecs = BindingCodecRegistry.default(artifact_store, clock=clock)
    resolver_config = attributes_config["resolver"]
    return ProfileServices(
        base_url=BASE_URL,
        entity_id=IDP_ENTITY_ID,
        relying_parties=RelyingPartyConfigurationManager.from_config(relying_parties_config, IDP_ENTITY_ID),
        metadata_provider=InMemoryMetadataProvider.from_config(metadata_config),
        codecs=codecs,
        endpoint_selector=EndpointSelector(codecs.outbound_bindings),
        crypto_policy=CryptoPolicyEngine(signer, encrypter),
        attribute_authority=AttributeAuthority(
            StaticAttributeResolver(resolver_config["definitions"], resolver_config["principals"]),
            PolicyAttributeFilter(attributes_config["release_policy"]),
        ),
        assertion_builder=AssertionBuilder(id_generator=SequentialIds(), clock=clock),
        session_storage=SessionStorage(),
        artifact_store=artifact_store,
        audit=AuditLogger(clock=clock),
    )


@pytest.fixture
def context():
    context = RequestContext()
    context.state = State()
    return context


@pytest.fixture
def idp_config_dict(metadata_config, relying_parties_config, attributes_config):
    return {
        "BASE": BASE_URL,
        "ENTITY_ID": IDP_ENTITY_ID,
        "COOKIE_STATE_NAME": "TEST_STATE",
        "COOKIE_SECURE": False,
        "STATE_ENCRYPTION_KEY": "state_encryption_key",
        "RELYING_PARTIES": relying_parties_config,
        "METADATA": {"inline": metadata_config},
        "ATTRIBUTES": attributes_config,
        "SECURITY": {
            "signer": {"module": "tests.util.FakeSigner"},
            "encrypter": {"module": "tests.util.FakeEncrypter"},
        },
        "LOGGING": {"version": 1, "disable_existing_loggers": False},
    }
