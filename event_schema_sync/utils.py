import signal
import time
from logging import getLogger

logger = getLogger(__name__)


class GracefulKiller:
    kill_now = False

    def __init__(self, install_handlers=True):
        if install_handlers:
            signal.signal(signal.SIGINT, self.exit_gracefully)
            signal.signal(signal.SIGTERM, self.exit_gracefully)

    def exit_gracefully(self, signum, frame):
        logger.info(f'received signal {signum}, stopping after current iteration')
        self.kill_now = True


def sleep_unless_killed(seconds, killer: GracefulKiller, step=0.3):
    """Sleep for `seconds`, returning early once the killer fires"""
    t1 = time.time()
    while not killer.kill_now:
        remaining = seconds - (time.time() - t1)
        if remaining <= 0:
            return
        time.sleep(min(step, remaining))


def format_floats(data):
    if isinstance(data, dict):
        return {k: format_floats(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [format_floats(v) for v in data]
    elif isinstance(data, float):
        return round(data, 3)
    return data
