import threading
from typing import Set

from cranegame import socketio
from .engine import Phase
from .registry import sessions


_active_workers: Set[str] = set()
# Guards _active_workers; a worker's decision to exit and its removal
# from the set happen under it, so a restart can never see a dying worker.
_workers_lock = threading.Lock()


def _release_if_idle(sid: str) -> bool:
    """Retire the worker for ``sid`` if its session has nothing left to run.

    Returns True when the worker should exit.
    """
    with _workers_lock:
        live = sessions.get(sid)
        if live is not None:
            with live.lock:
                if live.engine.phase is Phase.RUNNING or live.scheduler.next_deadline() is not None:
                    return False
        _active_workers.discard(sid)
        return True


def schedule_session_timers(app, session_id: str) -> None:
    """Start the real-time timer pump for a live session.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - Ensures a single worker per session
    - Exits once the session is removed, or stopped with nothing left to run
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return

    with _workers_lock:
        if session_id in _active_workers:
            app.logger.info(f"[timer-skip] session={session_id} worker already running")
            return
        if sessions.get(session_id) is None:
            return
        _active_workers.add(session_id)

    poll = float(app.config.get('TIMER_POLL_SEC', 0.05))
    app.logger.info(f"[timer-start] session={session_id} poll={poll}s")

    def _worker(sid: str):
        try:
            while True:
                live = sessions.get(sid)
                if live is None:
                    if _release_if_idle(sid):
                        app.logger.info(f"[timer-stop] session={sid} removed")
                        return
                    continue
                with app.app_context():
                    with live.lock:
                        live.scheduler.run_due()
                        deadline = live.scheduler.next_deadline()
                        running = live.engine.phase is Phase.RUNNING
                if deadline is None and not running:
                    # Stale locals: a restart may have landed since the lock was released
                    if _release_if_idle(sid):
                        app.logger.info(f"[timer-stop] session={sid} phase={live.engine.phase.value}")
                        return
                    continue
                if deadline is None:
                    delay = poll
                else:
                    delay = min(poll, max(0.0, deadline - live.scheduler.clock()))
                socketio.sleep(delay)
        except Exception:
            app.logger.exception(f"[timer-crash] session={sid}")
            with _workers_lock:
                _active_workers.discard(sid)
            raise

    socketio.start_background_task(_worker, session_id)
