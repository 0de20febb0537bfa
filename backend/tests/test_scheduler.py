import time

import pytest

import conftest
from cranegame import create_app, db, socketio
from cranegame.services.crane import scheduler as timer_worker
from cranegame.services.crane.engine import Phase
from cranegame.services.crane.registry import sessions
from cranegame.services.crane.round_config import RoundConfig


class WorkerConfig(conftest.TestConfig):
    ENABLE_SCHEDULER_IN_TESTS = True
    TIMER_POLL_SEC = 0.01


def _wait_for(predicate, timeout=3.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def _locked(live, read):
    with live.lock:
        return read(live.engine)


@pytest.fixture()
def worker_app(clock):
    application = create_app(WorkerConfig)
    with application.app_context():
        import cranegame.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()
    sessions.clear()
    assert _wait_for(lambda: not timer_worker._active_workers)


@pytest.fixture()
def worker_client(worker_app):
    return worker_app.test_client()


def _start(client):
    code = client.post('/api/sessions').get_json()['session_id']
    client.post(f'/api/sessions/{code}/start')
    return code


def test_worker_pumps_a_running_session(worker_client, clock):
    code = _start(worker_client)
    live = sessions.get(code)
    assert code in timer_worker._active_workers
    clock.advance(1.0)
    assert _wait_for(lambda: _locked(live, lambda e: e.time_remaining) == 99)


def test_one_worker_per_session(worker_client, monkeypatch):
    started = []
    original = socketio.start_background_task

    def _counting(target, *args, **kwargs):
        started.append(args)
        return original(target, *args, **kwargs)

    monkeypatch.setattr(socketio, 'start_background_task', _counting)
    code = _start(worker_client)
    worker_client.post(f'/api/sessions/{code}/start')
    worker_client.post(f'/api/sessions/{code}/start')
    assert started == [(code,)]


def test_worker_exits_when_session_is_removed(worker_client):
    code = _start(worker_client)
    assert code in timer_worker._active_workers
    worker_client.delete(f'/api/sessions/{code}')
    assert _wait_for(lambda: code not in timer_worker._active_workers)


def test_worker_exits_after_end_and_restart_rearms(worker_client, clock):
    code = _start(worker_client)
    live = sessions.get(code)
    clock.advance(100.0)
    assert _wait_for(lambda: _locked(live, lambda e: e.phase) is Phase.ENDED)
    assert _wait_for(lambda: code not in timer_worker._active_workers)

    worker_client.post(f'/api/sessions/{code}/start')
    assert code in timer_worker._active_workers
    clock.advance(1.0)
    assert _wait_for(lambda: _locked(live, lambda e: e.time_remaining) == 99)


def test_idle_check_sees_a_restart_that_landed_after_the_last_pump(clock):
    live = sessions.create(RoundConfig())
    try:
        with timer_worker._workers_lock:
            timer_worker._active_workers.add(live.session_id)
        # the worker last saw a stopped session, then a restart slipped in
        with live.lock:
            live.restart()
        assert timer_worker._release_if_idle(live.session_id) is False
        assert live.session_id in timer_worker._active_workers

        with live.lock:
            live.engine.shutdown()
            live.engine._phase = Phase.ENDED
        assert timer_worker._release_if_idle(live.session_id) is True
        assert live.session_id not in timer_worker._active_workers
    finally:
        sessions.remove(live.session_id)
        timer_worker._active_workers.discard(live.session_id)


def test_no_worker_in_plain_testing_mode(client):
    code = client.post('/api/sessions').get_json()['session_id']
    client.post(f'/api/sessions/{code}/start')
    assert code not in timer_worker._active_workers
