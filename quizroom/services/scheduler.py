from typing import Callable, Optional

from quizroom import socketio


def schedule_intent(app, delay: float, handler: Callable, event: str,
                    sid: Optional[str], payload: dict) -> None:
    """Deliver ``(event, sid, payload)`` to ``handler`` after ``delay`` seconds.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - Runs as a Socket.IO background task inside a fresh app context
    - Carries no state besides the message; the handler re-reads the store
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return

    app.logger.info(f"[timer-set] event={event} payload={payload} delay={delay}s")
    socketio.start_background_task(_worker, app, delay, handler, event, sid, payload)


def _worker(app, delay: float, handler: Callable, event: str, sid: Optional[str], payload: dict) -> None:
    hb = int(app.config.get('TIMER_HEARTBEAT_SEC', 0))
    if hb > 0:
        slept = 0.0
        while slept < delay:
            step = min(hb, delay - slept)
            socketio.sleep(step)
            slept += step
            app.logger.info(f"[timer-heartbeat] event={event} payload={payload} remaining={max(0, delay - slept)}s")
    else:
        socketio.sleep(delay)
    with app.app_context():
        app.logger.info(f"[timer-fire] event={event} payload={payload}")
        handler(event, sid, payload)
