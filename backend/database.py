from threading import Lock

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config

# Passed to Session.connection() by write transactions. Only the SQLite begin
# hook reads it; other backends ignore unknown execution options.
WRITE_LOCK_OPTIONS = {'sqlite_begin': 'IMMEDIATE'}


def build_engine(database_url: str, statement_timeout_ms: int | None = None) -> Engine:
    timeout_ms = statement_timeout_ms or config.DB_STATEMENT_TIMEOUT_MS
    url = make_url(database_url)
    backend_name = url.get_backend_name()

    connect_args: dict = {}
    if backend_name == 'sqlite':
        connect_args = {'check_same_thread': False, 'timeout': timeout_ms / 1000}
    elif backend_name == 'postgresql':
        connect_args = {'options': f'-c statement_timeout={timeout_ms}'}

    new_engine = create_engine(database_url, connect_args=connect_args, echo=config.DATABASE_ECHO)

    if backend_name == 'sqlite':
        _configure_sqlite_transactions(new_engine, use_wal=url.database not in (None, '', ':memory:'))

    return new_engine


def _configure_sqlite_transactions(sqlite_engine: Engine, use_wal: bool) -> None:
    # Reads open a deferred transaction. Write transactions ask for the write
    # lock up front so a booking's check and insert run under the same lock.
    # WAL keeps open read snapshots from blocking a writer's commit.
    @event.listens_for(sqlite_engine, 'connect')
    def _disable_driver_transactions(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None
        if use_wal:
            cursor = dbapi_connection.cursor()
            cursor.execute('PRAGMA journal_mode=WAL')
            cursor.close()

    @event.listens_for(sqlite_engine, 'begin')
    def _begin(connection):
        mode = connection.get_execution_options().get('sqlite_begin')
        if mode == 'IMMEDIATE':
            connection.exec_driver_sql('BEGIN IMMEDIATE')
        else:
            connection.exec_driver_sql('BEGIN')


engine = build_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


_schema_lock = Lock()
_appointment_schema_checked = False
_schedule_schema_checked = False


def ensure_schedule_schema(bind: Engine | None = None) -> None:
    global _schedule_schema_checked

    if _schedule_schema_checked:
        return

    with _schema_lock:
        if _schedule_schema_checked:
            return

        target = bind or engine
        if 'schedule_templates' not in inspect(target).get_table_names():
            _schedule_schema_checked = True
            return

        with target.begin() as connection:
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_schedule_templates_doctor_day '
                    'ON schedule_templates(doctor_profile_id, day_of_week)'
                )
            )

        _schedule_schema_checked = True


def ensure_appointment_schema(bind: Engine | None = None) -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        target = bind or engine
        if 'appointments' not in inspect(target).get_table_names():
            _appointment_schema_checked = True
            return

        with target.begin() as connection:
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_active_slot '
                    "ON appointments(doctor_profile_id, date, start_time) WHERE status = 'SCHEDULED'"
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_doctor_date ON appointments(doctor_profile_id, date)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_patient_date ON appointments(patient_id, date)')
            )

        _appointment_schema_checked = True
