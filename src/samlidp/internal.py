"""Internal data representation of the login handshake and the IdP session."""
from __future__ import annotations

from collections import UserDict
from typing import Any, Optional, TypeVar

TDatafySubclass = TypeVar("TDatafySubclass", bound="_Datafy")


class _Datafy(UserDict):

    def __setattr__(self, key, value):
        if key == "data":
            return super().__setattr__(key, value)

        self.__setitem__(key, value)

    def __getattr__(self, key):
        if key == "data":
            return self.data

        try:
            value = self.__getitem__(key)
        except KeyError as e:
            msg = "'{type}' object has no attribute '{attr}'".format(type=type(self), attr=key)
            raise AttributeError(msg) from e
        return value

    def to_dict(self) -> dict[str, Any]:
        """
        Converts an object to a dict
        :return: A dict representation of the object
        """
        data = {
            key: value
            for key, value_obj in self.items()
            for value in [value_obj.to_dict() if hasattr(value_obj, "to_dict") else value_obj]
        }
        return data

    @classmethod
    def from_dict(cls: type[TDatafySubclass], data: dict[str, Any]) -> TDatafySubclass:
        """
        :param data: A dict representation of an object
        :return: An object
        """
        instance = cls(**data.copy())
        return instance


class LoginContext(_Datafy):
    """
    State correlating the two legs of the SSO handshake.

    Created by the profile handler before control is handed to the
    authentication engine, completed by the authentication engine, and read
    exactly once by the profile handler when the user comes back.
    """

    STAGE_AWAITING_AUTHENTICATION = "awaiting_authentication"
    STAGE_AUTHENTICATED = "authenticated"

    FAILURE_PASSIVE = "passive"
    FAILURE_GENERIC = "generic"

    def __init__(
        self,
        conversation_id: Optional[str] = None,
        relying_party_id: Optional[str] = None,
        relay_state: Optional[str] = None,
        requested_authn_methods: Optional[list[str]] = None,
        authn_request: Optional[str] = None,
        inbound_binding: Optional[str] = None,
        profile: Optional[str] = None,
        profile_handler_url: Optional[str] = None,
        force_authn: bool = False,
        is_passive: bool = False,
        stage: Optional[str] = None,
        principal_name: Optional[str] = None,
        authentication_method: Optional[str] = None,
        authentication_instant: Optional[int] = None,
        authentication_failure: Optional[str] = None,
        authentication_failure_message: Optional[str] = None,
        *args,
        **kwargs,
    ):
        """
        :param conversation_id: correlation id, the state's session id
        :param relying_party_id: entity id of the requesting SP
        :param relay_state: opaque relay state to return to the SP
        :param requested_authn_methods: authentication methods acceptable to the SP
        :param authn_request: serialized copy of the original request
        :param inbound_binding: binding the original request arrived over
        :param profile: profile kind that created the context
        :param profile_handler_url: where the authentication engine returns the user
        :param force_authn: whether the SP asked for fresh authentication
        :param is_passive: whether the SP forbade user interaction
        :param stage: handshake stage
        :param principal_name: authenticated principal
        :param authentication_method: method used to authenticate
        :param authentication_instant: epoch seconds of the authentication
        :param authentication_failure: failure kind, passive or generic
        :param authentication_failure_message: failure detail
        """
        super().__init__(self, *args, **kwargs)
        self.conversation_id = conversation_id
        self.relying_party_id = relying_party_id
        self.relay_state = relay_state
        self.requested_authn_methods = list(requested_authn_methods or [])
        self.authn_request = authn_request
        self.inbound_binding = inbound_binding
        self.profile = profile
        self.profile_handler_url = profile_handler_url
        self.force_authn = bool(force_authn)
        self.is_passive = bool(is_passive)
        self.stage = stage or LoginContext.STAGE_AWAITING_AUTHENTICATION
        self.principal_name = principal_name
        self.authentication_method = authentication_method
        self.authentication_instant = authentication_instant
        self.authentication_failure = authentication_failure
        self.authentication_failure_message = authentication_failure_message

    @property
    def is_complete(self) -> bool:
        """
        True once the authentication engine recorded an outcome.
        """
        if self.stage != LoginContext.STAGE_AUTHENTICATED:
            return False
        return bool(self.principal_name) or bool(self.authentication_failure)

    def set_authenticated(self, principal_name, authentication_method, authentication_instant):
        self.principal_name = principal_name
        self.authentication_method = authentication_method
        self.authentication_instant = authentication_instant
        self.authentication_failure = None
        self.stage = LoginContext.STAGE_AUTHENTICATED

    def set_failed(self, failure, message=None):
        self.principal_name = None
        self.authentication_failure = failure
        self.authentication_failure_message = message
        self.stage = LoginContext.STAGE_AUTHENTICATED


class AuthenticationMethodInformation(_Datafy):
    """
    How and when the principal authenticated for a relying party.
    """

    def __init__(
        self,
        authentication_method: Optional[str] = None,
        authentication_instant: Optional[int] = None,
        expiration_instant: Optional[int] = None,
        *args,
        **kwargs,
    ):
        super().__init__(self, *args, **kwargs)
        self.authentication_method = authentication_method
        self.authentication_instant = authentication_instant
        self.expiration_instant = expiration_instant


class IdPSession(_Datafy):
    """
    An authenticated session at the IdP.
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        principal_name: Optional[str] = None,
        created: Optional[int] = None,
        authn_methods: Optional[dict[str, Any]] = None,
        *args,
        **kwargs,
    ):
        """
        :param session_id: session identifier, also used as SessionIndex
        :param principal_name: authenticated principal
        :param created: epoch seconds of creation
        :param authn_methods: relying party id -> AuthenticationMethodInformation
        """
        super().__init__(self, *args, **kwargs)
        self.session_id = session_id
        self.principal_name = principal_name
        self.created = created
        self.authn_methods = {
            rp: info if isinstance(info, AuthenticationMethodInformation)
            else AuthenticationMethodInformation(**info)
            for rp, info in (authn_methods or {}).items()
        }

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["authn_methods"] = {rp: info.to_dict() for rp, info in self.authn_methods.items()}
        return data

    def authn_method_for(self, relying_party_id):
        """
        :rtype: AuthenticationMethodInformation | None
        """
        return self.authn_methods.get(relying_party_id)

    def record_authn_method(self, relying_party_id, authentication_method, authentication_instant,
                            expiration_instant=None):
        info = AuthenticationMethodInformation(
            authentication_method=authentication_method,
            authentication_instant=authentication_instant,
            expiration_instant=expiration_instant,
        )
        self.authn_methods[relying_party_id] = info
        return info

    def latest_authn_method(self):
        """
        :rtype: AuthenticationMethodInformation | None
        """
        if not self.authn_methods:
            return None
        return max(self.authn_methods.values(), key=lambda info: info.authentication_instant or 0)
