"""
Browser bound state of the IdP, kept in an encrypted cookie.

The cookie holds only identifiers: the conversation id used to correlate the
two legs of the SSO handshake and the id of the user's IdP session. Everything
else lives in server side storage.
"""
import base64
import copy
import hashlib
import json
import logging
import lzma
import os
from collections import UserDict
from http.cookies import SimpleCookie
from uuid import uuid4

from cryptojwt.jwe.aes import AES_GCMEncrypter

from samlidp.exception import SAMLIdPStateError
import samlidp.logging_util as lu

logger = logging.getLogger(__name__)

_SESSION_ID_KEY = "SESSION_ID"
_IDP_SESSION_ID_KEY = "IDP_SESSION_ID"
_NONCE_SIZE = 12


def _cipher(encryption_key):
    # AES-GCM needs a 256 bit key, whatever the configured secret looks like
    if isinstance(encryption_key, str):
        encryption_key = encryption_key.encode("utf-8")
    return AES_GCMEncrypter(key=hashlib.sha256(encryption_key).digest())


def _seal(payload, encryption_key):
    nonce = os.urandom(_NONCE_SIZE)
    sealed = nonce + _cipher(encryption_key).encrypt(lzma.compress(payload), iv=nonce)
    return base64.urlsafe_b64encode(lzma.compress(sealed)).decode("utf-8")


def _open(token, encryption_key):
    sealed = lzma.decompress(base64.urlsafe_b64decode(token.encode("utf-8")))
    nonce, cipher_text = sealed[:_NONCE_SIZE], sealed[_NONCE_SIZE:]
    return lzma.decompress(_cipher(encryption_key).decrypt(cipher_text, iv=nonce))


class State(UserDict):
    """
    Holds the state of a browser. A state object must be possible to convert
    to a json string, otherwise an exception will be raised.
    """

    def __init__(self, packed_data=None, encryption_key=None):
        """
        If packed_data is empty or can't be opened with the key, a new state
        with a fresh session id is returned.

        :type packed_data: str
        :type encryption_key: str | bytes

        :param packed_data: A string created by the method pack in this class.
        :param encryption_key: The key to be used for decryption.
        """
        self.delete = False

        if packed_data and not encryption_key:
            raise ValueError("If 'packed_data' is supplied 'encryption_key' must be specified.")

        data = self.unpack(packed_data, encryption_key) if packed_data else None
        data = data or {}
        data.setdefault(_SESSION_ID_KEY, uuid4().urn)
        super().__init__(data)

    @property
    def session_id(self):
        return self.data.get(_SESSION_ID_KEY)

    @property
    def idp_session_id(self):
        return self.data.get(_IDP_SESSION_ID_KEY)

    @idp_session_id.setter
    def idp_session_id(self, value):
        if value is None:
            self.data.pop(_IDP_SESSION_ID_KEY, None)
        else:
            self.data[_IDP_SESSION_ID_KEY] = value

    @staticmethod
    def unpack(data, encryption_key):
        """
        :type data: str
        :rtype: dict | None
        """
        try:
            return json.loads(_open(data, encryption_key))
        except Exception as e:
            logger.warning({
                "message": "Could not open state cookie, starting a new state.",
                "reason": str(e),
            })
            return None

    def pack(self, encryption_key):
        """
        Url safe, encrypted form of the state. Each call uses a new nonce.

        :type encryption_key: str | bytes
        :rtype: str
        """
        return _seal(json.dumps(self.data).encode("utf-8"), encryption_key)

    def copy(self):
        """
        :rtype: samlidp.state.State
        """
        state_copy = State()
        state_copy.data = copy.deepcopy(self.data)
        return state_copy


def state_to_cookie(
        state: State,
        *,
        name: str,
        path: str,
        encryption_key: str,
        secure: bool = None,
        httponly: bool = None,
        samesite: str = None,
        max_age: str = None,
) -> SimpleCookie:
    """
    Saves a state to a cookie. A state marked for deletion gives an empty,
    expired cookie.

    :param state: the data to save
    :param name: identifier of the cookie
    :param path: path the cookie will be associated to
    :param encryption_key: the key to use to encrypt the state information
    :param secure: whether to include the cookie only over a secure channel, defaults to True
    :param httponly: whether the cookie should only be accessed by the server
    :param samesite: SameSite attribute of the cookie, defaults to "None"
    :param max_age: maximum lifetime of the cookie in seconds
    :return: A cookie object
    """
    cookie = SimpleCookie()
    if state.delete:
        cookie[name] = ""
        cookie[name]["max-age"] = 0
    else:
        cookie[name] = state.pack(encryption_key)
        cookie[name]["max-age"] = "" if max_age is None else max_age

    morsel = cookie[name]
    morsel["path"] = path
    morsel["secure"] = True if secure is None else secure
    morsel["httponly"] = "" if httponly is None else httponly
    morsel["samesite"] = "None" if samesite is None else samesite

    msg = "Saved state in cookie {name} with properties {props}".format(name=name, props=list(morsel.items()))
    logger.debug(lu.LOG_FMT.format(id=lu.get_session_id(state), message=msg))
    return cookie


def cookie_to_state(cookie_str: str, name: str, encryption_key: str) -> State:
    """
    Loads a state from a cookie

    :param cookie_str: string representation of cookie/s
    :param name: Name identifier of the cookie
    :param encryption_key: Key to decrypt the state information
    :return: A state
    """
    cookie = SimpleCookie(cookie_str)
    if name not in cookie:
        raise SAMLIdPStateError("No cookie named {name} in {data}".format(name=name, data=cookie_str))
    try:
        return State(cookie[name].value, encryption_key)
    except ValueError as e:
        raise SAMLIdPStateError("Failed to process {name} from {data}".format(name=name, data=cookie_str)) from e
