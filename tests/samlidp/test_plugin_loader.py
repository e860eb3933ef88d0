import pytest

from samlidp.authn import RemoteUserLoginHandler
from samlidp.exception import SAMLIdPConfigurationError
from samlidp.idp_config import IdPConfig
from samlidp.metadata import InMemoryMetadataProvider
from samlidp.plugin_loader import DEFAULT_HANDLERS
from samlidp.plugin_loader import load_component
from samlidp.plugin_loader import load_crypto_policy
from samlidp.plugin_loader import load_handlers
from samlidp.plugin_loader import load_services
from samlidp.profiles.status import StatusHandler
from samlidp.session_storage import SessionStorage
from samlidp.session_storage import SessionStorageSQL
from samlidp.session_storage import Storage
from samlidp.store import ArtifactStore
from samlidp.store import ArtifactStoreInMemory
from ..conftest import SP_ENTITY_ID
from ..util import FakeEncrypter
from ..util import FakeSigner


class TestLoadComponent:
    def test_default(self):
        assert isinstance(load_component(None, ArtifactStore, ArtifactStoreInMemory), ArtifactStoreInMemory)

    def test_named_module(self, tmpdir):
        storage = load_component({
            "module": "samlidp.session_storage.SessionStorageSQL",
            "config": {"url": "sqlite:///" + str(tmpdir.join("sessions.db"))},
        }, Storage, SessionStorage)
        assert isinstance(storage, SessionStorageSQL)

    def test_unknown_module(self):
        with pytest.raises(SAMLIdPConfigurationError):
            load_component({"module": "samlidp.nothing.Here"}, Storage, SessionStorage)

    def test_wrong_base_class(self):
        with pytest.raises(SAMLIdPConfigurationError):
            load_component({"module": "samlidp.store.ArtifactStoreInMemory"}, Storage, SessionStorage)


class TestLoadServices:
    def test_crypto_components(self, idp_config_dict):
        crypto_policy = load_crypto_policy(IdPConfig(idp_config_dict))
        assert isinstance(crypto_policy.signer, FakeSigner)
        assert isinstance(crypto_policy.encrypter, FakeEncrypter)

    def test_services(self, idp_config_dict):
        idp_config_dict["AUTHN_URL"] = "https://login.example.org/"
        services = load_services(IdPConfig(idp_config_dict))
        assert services.entity_id == "https://idp.example.org/idp"
        assert services.authn_url == "https://login.example.org/"
        assert isinstance(services.metadata_provider, InMemoryMetadataProvider)
        assert services.metadata_provider.get_entity(SP_ENTITY_ID) is not None
        assert services.relying_parties.get(SP_ENTITY_ID).relying_party_id == SP_ENTITY_ID
        assert services.codecs.encoder("urn:oasis:names:tc:SAML:2.0:bindings:HTTP-Artifact").artifact_store \
            is services.artifact_store

    def test_default_authn_url(self, idp_config_dict):
        services = load_services(IdPConfig(idp_config_dict))
        assert services.authn_url == "https://idp.example.org/authn/RemoteUser"

    def test_attribute_authority(self, idp_config_dict):
        services = load_services(IdPConfig(idp_config_dict))
        assert services.attribute_authority.filter_engine.allowed_for(SP_ENTITY_ID) == {
            "eduPersonPrincipalName", "transientId"}
        assert "uid" in services.attribute_authority.resolver.definitions


class TestLoadHandlers:
    def test_default_handlers(self, idp_config_dict, services):
        handlers = load_handlers(IdPConfig(idp_config_dict), services)
        assert [type(handler) for handler in handlers] == DEFAULT_HANDLERS

    def test_configured_handlers(self, idp_config_dict, services):
        idp_config_dict["PROFILE_HANDLERS"] = [
            {"module": "samlidp.authn.RemoteUserLoginHandler", "name": "login",
             "config": {"endpoint": "login"}},
            {"module": "samlidp.profiles.status.StatusHandler"},
        ]
        handlers = load_handlers(IdPConfig(idp_config_dict), services)
        assert isinstance(handlers[0], RemoteUserLoginHandler)
        assert handlers[0].name == "login"
        assert handlers[0].register_endpoints()[0][0] == "^login$"
        assert isinstance(handlers[1], StatusHandler)
        assert handlers[1].name == "status"

    def test_handler_without_module(self, idp_config_dict, services):
        idp_config_dict["PROFILE_HANDLERS"] = [{"name": "nameless"}]
        with pytest.raises(SAMLIdPConfigurationError):
            load_handlers(IdPConfig(idp_config_dict), services)
