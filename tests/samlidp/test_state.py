from http.cookies import SimpleCookie

import pytest

from samlidp.exception import SAMLIdPStateError
from samlidp.state import State
from samlidp.state import cookie_to_state
from samlidp.state import state_to_cookie

KEY = "state_encryption_key"


class TestState:
    def test_new_state_has_session_id(self):
        state = State()
        assert state.session_id.startswith("urn:uuid:")
        assert state.idp_session_id is None

    def test_pack_unpack(self):
        state = State()
        state.idp_session_id = "s1"
        state["extra"] = ["a", "b"]

        unpacked = State(state.pack(KEY), KEY)
        assert unpacked.session_id == state.session_id
        assert unpacked.idp_session_id == "s1"
        assert unpacked["extra"] == ["a", "b"]

    def test_pack_is_randomized(self):
        state = State()
        assert state.pack(KEY) != state.pack(KEY)

    def test_wrong_key_gives_fresh_state(self):
        state = State()
        state.idp_session_id = "s1"
        unpacked = State(state.pack(KEY), "another key")
        assert unpacked.session_id != state.session_id
        assert unpacked.idp_session_id is None

    def test_garbage_gives_fresh_state(self):
        assert State("bm90IHN0YXRl", KEY).idp_session_id is None

    def test_packed_data_needs_key(self):
        with pytest.raises(ValueError):
            State("data")

    def test_clear_idp_session_id(self):
        state = State()
        state.idp_session_id = "s1"
        state.idp_session_id = None
        assert "IDP_SESSION_ID" not in state

    def test_copy_is_deep(self):
        state = State()
        state["list"] = [1]
        state_copy = state.copy()
        state_copy["list"].append(2)
        assert state["list"] == [1]


class TestStateCookie:
    def test_round_trip(self):
        state = State()
        state.idp_session_id = "s1"
        cookie = state_to_cookie(state, name="IDP_STATE", path="/", encryption_key=KEY)
        morsel = cookie["IDP_STATE"]
        assert morsel["secure"] is True
        assert morsel["samesite"] == "None"

        loaded = cookie_to_state(cookie.output(header="").strip(), "IDP_STATE", KEY)
        assert loaded.idp_session_id == "s1"

    def test_deleted_state_expires_cookie(self):
        state = State()
        state.delete = True
        cookie = state_to_cookie(state, name="IDP_STATE", path="/", encryption_key=KEY, secure=False)
        assert cookie["IDP_STATE"].value == ""
        assert cookie["IDP_STATE"]["max-age"] == 0

    def test_missing_cookie(self):
        cookie = SimpleCookie()
        cookie["other"] = "value"
        with pytest.raises(SAMLIdPStateError):
            cookie_to_state(cookie.output(header="").strip(), "IDP_STATE", KEY)
