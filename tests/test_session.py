from __future__ import annotations

import json

from relay.protocol import AgentProfile, ConverseV1Protocol
from relay.session import (
    CloseAgent,
    CloseTelephony,
    ConnectAgent,
    LinkState,
    SendAgent,
    SendTelephony,
    Session,
    SessionState,
)


def _session() -> Session:
    return Session(ConverseV1Protocol(AgentProfile(default_prompt="Default")))


def _start(sid: str = "MZ1", parameters: dict | None = None) -> str:
    start = {"streamSid": sid}
    if parameters is not None:
        start["customParameters"] = parameters
    return json.dumps({"event": "start", "start": start})


def _media(payload: str, track: str = "inbound") -> str:
    return json.dumps({"event": "media", "media": {"track": track, "payload": payload}})


STOP = json.dumps({"event": "stop"})


def _open_session(parameters: dict | None = None) -> Session:
    session = _session()
    session.receive_telephony(_start(parameters=parameters))
    session.agent_opened()
    return session


def test_start_activates_session_and_requests_agent_link():
    session = _session()

    effects = session.receive_telephony(_start("MZ9", {"prompt": "Be terse"}))

    assert effects == [ConnectAgent(parameters={"prompt": "Be terse"})]
    assert session.state is SessionState.ACTIVE
    assert session.link_state is LinkState.CONNECTING
    assert session.stream_sid == "MZ9"


def test_events_before_start_are_ignored():
    session = _session()

    assert session.receive_telephony(_media("AAAA")) == []
    assert session.receive_telephony(STOP) == []
    assert session.state is SessionState.IDLE


def test_media_is_dropped_until_link_is_open():
    session = _session()
    session.receive_telephony(_start())

    assert session.receive_telephony(_media("AAAA")) == []

    session.agent_opened()
    assert session.receive_telephony(_media("AAAA")) == [
        SendAgent({"type": "Audio", "audio": {"payload": "AAAA"}})
    ]


def test_outbound_track_is_not_relayed():
    session = _open_session()
    assert session.receive_telephony(_media("AAAA", track="outbound")) == []


def test_agent_audio_becomes_one_telephony_frame():
    session = _open_session()

    effects = session.receive_agent(json.dumps({"type": "AgentAudio", "audio": {"payload": "Q"}}))

    assert effects == [SendTelephony({"event": "media", "streamSid": "MZ1", "media": {"payload": "Q"}})]


def test_agent_audio_without_stream_sid_is_dropped():
    session = _session()
    session.state = SessionState.ACTIVE

    assert session.receive_agent(json.dumps({"type": "AgentAudio", "audio": {"payload": "Q"}})) == []


def test_malformed_frames_never_end_the_session():
    session = _open_session()

    assert session.receive_telephony("{broken") == []
    assert session.receive_agent("not json") == []
    assert session.receive_agent(b"\xff\xfe") == []
    assert session.state is SessionState.ACTIVE
    assert session.link_state is LinkState.OPEN


def test_informational_and_unknown_agent_events_produce_nothing():
    session = _open_session()

    for message in (
        {"type": "Welcome"},
        {"type": "SettingsApplied"},
        {"type": "ConversationText", "role": "assistant", "content": "Hello"},
        {"type": "AgentThinking"},
        {"type": "BrandNewEvent"},
    ):
        assert session.receive_agent(json.dumps(message)) == []
    assert session.state is SessionState.ACTIVE


def test_stop_closes_agent_once_and_ignores_later_media():
    session = _open_session()

    assert session.receive_telephony(STOP) == [CloseAgent()]
    assert session.state is SessionState.CLOSED
    assert session.receive_telephony(_media("AAAA")) == []
    assert session.receive_telephony(STOP) == []
    assert session.telephony_closed() == []


def test_agent_error_tears_down_both_sides():
    session = _open_session()

    effects = session.receive_agent(json.dumps({"type": "Error", "description": "bad settings"}))

    assert effects == [CloseAgent(), CloseTelephony()]
    assert session.closed


def test_teardown_is_idempotent_across_triggers():
    session = _open_session()

    first = session.agent_failed("socket reset")
    assert first == [CloseAgent(), CloseTelephony()]
    assert session.telephony_closed() == []
    assert session.agent_failed("again") == []
    assert session.receive_agent(json.dumps({"type": "Error"})) == []


def test_telephony_close_before_start_has_nothing_to_release():
    session = _session()
    assert session.telephony_closed() == []
    assert session.closed


def test_telephony_close_while_connecting_closes_agent():
    session = _session()
    session.receive_telephony(_start())

    assert session.telephony_closed() == [CloseAgent()]
    assert session.agent_opened() == []
    assert session.link_state is LinkState.CLOSED


def test_clean_agent_close_keeps_call_but_stops_relaying():
    session = _open_session()

    assert session.agent_closed() == [CloseAgent()]
    assert session.state is SessionState.ACTIVE
    assert session.receive_telephony(_media("AAAA")) == []
    # Link already released; stop only ends the session.
    assert session.receive_telephony(STOP) == []
    assert session.closed
