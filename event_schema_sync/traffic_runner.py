import threading
import time
from dataclasses import dataclass
from logging import getLogger

from fastapi import APIRouter, FastAPI
from uvicorn import Config, Server

from .config import Settings
from .errors import DbError, LoadError
from .pg_api import PgApi
from .schema_sync import SchemaSynchronizer
from .traffic import EventTrafficGenerator
from .type_catalog import load_type_catalog
from .utils import GracefulKiller, format_floats, sleep_unless_killed


logger = getLogger(__name__)


@dataclass
class Statistics:
    iterations: int = 0
    writes_count: int = 0
    write_errors_count: int = 0
    reads_count: int = 0
    rows_read_count: int = 0
    read_errors_count: int = 0
    syncs_count: int = 0
    sync_errors_count: int = 0
    busy_time: float = 0.0

    def to_dict(self):
        return format_floats(dict(self.__dict__))


class TrafficLoop:
    """Shared skeleton of the reader and writer processes: one iteration,
    then a fixed sleep that doubles as the cancellation check."""

    name = 'loop'

    def __init__(self, config: Settings, interval: float, pg_api=None, killer: GracefulKiller = None):
        self.config = config
        self.interval = interval
        self.pg_api = pg_api if pg_api is not None else PgApi(config.postgres)
        self.killer = killer
        self.stats = Statistics()
        self.last_dump_stats_time = time.time()

    def log_stats_if_required(self, force=False):
        curr_time = time.time()
        if curr_time - self.last_dump_stats_time < self.config.stats_dump_interval and not force:
            return
        self.last_dump_stats_time = curr_time
        logger.info(f'stats: {self.stats.to_dict()}')

    def prepare(self):
        pass

    def shutdown(self):
        pass

    def run_iteration(self):
        raise NotImplementedError

    def run(self):
        killer = self.killer or GracefulKiller()
        logger.info(f'starting {self.name}, use Ctrl+C to stop it at any point')
        self.prepare()
        try:
            while not killer.kill_now:
                t1 = time.time()
                self.run_iteration()
                self.stats.iterations += 1
                self.stats.busy_time += time.time() - t1
                self.log_stats_if_required()
                sleep_unless_killed(self.interval, killer)
        finally:
            self.shutdown()
            self.pg_api.close()
            self.log_stats_if_required(force=True)
        logger.info(f'{self.name} terminated by the user')


class EventWriter(TrafficLoop):
    name = 'writer'
    SERVER_JOIN_TIMEOUT = 5.0

    def __init__(self, config: Settings, interval: float = None, pg_api=None, killer: GracefulKiller = None):
        if interval is None:
            interval = config.seconds_between_writes
        super().__init__(config, interval, pg_api=pg_api, killer=killer)
        self.generator = EventTrafficGenerator(self.pg_api, time_column=config.time_column)
        self.synchronizer = None
        self.http_server = None
        self.server_thread = None
        self.resync_requested = False

    def prepare(self):
        # fails the whole process if the initial load or sync fails
        self.synchronizer = SchemaSynchronizer.initialize(
            self.config.event_type_file,
            self.pg_api,
            watcher_settings=self.config.watcher,
            time_column=self.config.time_column,
        )
        self.stats.syncs_count += 1
        self.http_server = self.create_server()
        if self.http_server is not None:
            self.server_thread = threading.Thread(target=self.run_server, daemon=True)
            self.server_thread.start()

    def shutdown(self):
        if self.synchronizer is not None:
            self.synchronizer.close()
        if self.http_server is not None:
            self.http_server.should_exit = True
        if self.server_thread is not None:
            self.server_thread.join(timeout=EventWriter.SERVER_JOIN_TIMEOUT)

    def run_iteration(self):
        if self.resync_requested:
            self.resync_requested = False
            logger.info('schema resync requested over http')
            self.synchronizer.request_resync()

        try:
            if self.synchronizer.poll_and_sync() is not None:
                self.stats.syncs_count += 1
        except (LoadError, DbError):
            # already logged, the previous snapshot stays in use
            self.stats.sync_errors_count += 1

        try:
            self.generator.generate_write(self.synchronizer.snapshot)
            self.stats.writes_count += 1
        except DbError as e:
            logger.error(f'random write failed: {e}')
            self.stats.write_errors_count += 1

    def get_schema(self):
        snapshot = self.synchronizer.snapshot if self.synchronizer else None
        if snapshot is None:
            return {}
        return snapshot.to_dict()

    def request_resync(self):
        self.resync_requested = True
        return {'status': 'resync requested'}

    def create_app(self):
        app = FastAPI()
        router = APIRouter()
        router.add_api_route('/schema', self.get_schema, methods=['GET'])
        router.add_api_route('/resync', self.request_resync, methods=['GET'])
        app.include_router(router)
        return app

    def create_server(self):
        if not self.config.http_host or not self.config.http_port:
            logger.info('http server disabled')
            return None
        config = Config(app=self.create_app(), host=self.config.http_host, port=self.config.http_port)
        return Server(config)

    def run_server(self):
        logger.info(f'starting http server on {self.config.http_host}:{self.config.http_port}')
        self.http_server.run()


class EventReader(TrafficLoop):
    name = 'reader'

    def __init__(self, config: Settings, interval: float = None, pg_api=None, killer: GracefulKiller = None):
        if interval is None:
            interval = config.seconds_between_reads
        super().__init__(config, interval, pg_api=pg_api, killer=killer)
        self.generator = EventTrafficGenerator(self.pg_api, time_column=config.time_column)
        self.catalog = None

    def prepare(self):
        self.catalog = load_type_catalog(self.config.event_type_file)
        logger.info(f'reading event types {self.catalog.names()}')

    def run_iteration(self):
        try:
            rows = self.generator.generate_read(self.catalog)
            self.stats.reads_count += 1
            self.stats.rows_read_count += rows
        except DbError as e:
            logger.error(f'random read failed: {e}')
            self.stats.read_errors_count += 1
