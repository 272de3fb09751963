"""Session lifecycle and registry."""
import asyncio
from dataclasses import replace

from safenight.service import SafetySession, SessionRegistry

from conftest import FakeLocation, FakeNotifier, FakeRecorder, ScriptedTranscriber


def test_session_lifecycle(audit_log, profile):
    session = SafetySession(profile, audit_log=audit_log, notifier=FakeNotifier(), location_provider=FakeLocation())

    async def scenario():
        await session.start(interval_s=0.01)
        session.ledger.log_quick("beer", profile.id)
        event = await session.trigger_sos()
        assert event.user_id == profile.id
        assert session.resolve_sos().id == event.id
        await session.shutdown()

    asyncio.run(scenario())
    assert session.closed
    assert session.timer is None
    assert len(session.ledger) == 0
    assert len(session.sos.history(profile.id)) == 1


def test_code_word_listener_triggers_sos(audit_log, profile):
    session = SafetySession(profile, audit_log=audit_log, notifier=FakeNotifier(), location_provider=FakeLocation())

    async def scenario():
        session.start_listening(FakeRecorder(), ScriptedTranscriber(["help pineapple"]), chunk_s=0, interval_s=0)
        for _ in range(50):
            await asyncio.sleep(0.01)
            if session.sos.is_active(profile.id):
                break
        await session.shutdown()

    asyncio.run(scenario())
    [event] = session.sos.history(profile.id)
    assert event.trigger == "code_word"


def test_changed_code_word_rearms_listener(audit_log, profile):
    session = SafetySession(profile, audit_log=audit_log, notifier=FakeNotifier(), location_provider=FakeLocation())
    transcriber = ScriptedTranscriber(["pineapple please", "mango"])

    async def scenario():
        listener = session.start_listening(FakeRecorder(), transcriber, chunk_s=0, interval_s=0)
        session.update_profile(replace(profile, sos_code_word="mango"))
        assert listener.code_word == "mango"
        for _ in range(50):
            await asyncio.sleep(0.01)
            if session.sos.is_active(profile.id):
                break
        await session.shutdown()

    asyncio.run(scenario())
    [event] = session.sos.history(profile.id)
    assert event.trigger == "code_word"
    assert transcriber.texts == []


def test_update_profile_recalculates(audit_log, profile):
    session = SafetySession(profile, audit_log=audit_log)
    session.ledger.log_quick("wine", profile.id)
    light = session.ledger.current_bac.bac
    session.update_profile(replace(profile, weight_lb=250))
    assert session.ledger.current_bac.bac < light


def test_registry_reuses_and_closes(audit_log, profile):
    registry = SessionRegistry(audit_log=audit_log, notifier=FakeNotifier())
    first = registry.open(profile)
    assert registry.open(profile) is first

    asyncio.run(first.trigger_sos())
    asyncio.run(registry.close(profile.id))
    assert registry.get(profile.id) is None

    reopened = registry.open(profile)
    assert reopened is not first
    assert reopened.sos.is_active(profile.id)
