from contextlib import contextmanager
from typing import Iterator

from psycopg2 import errorcodes
from sqlalchemy import create_engine, func, select
from sqlalchemy.engine.url import URL
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy import or_, and_

from billing_hub.core.exceptions import DatabaseConnectionError
from billing_hub.db.model import Product, create_all
from billing_hub.utils.logger import get_logger

logger = get_logger(__name__)

# SQLSTATEs that mean "another transaction got there first, try again"
RETRYABLE_SQLSTATES = {
    errorcodes.SERIALIZATION_FAILURE,
    errorcodes.DEADLOCK_DETECTED,
    errorcodes.LOCK_NOT_AVAILABLE,
}


def is_concurrency_conflict(exc: Exception) -> bool:
    """True for errors that a fresh retry of the unit of work can resolve."""
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, DBAPIError):
        if getattr(exc.orig, "pgcode", None) in RETRYABLE_SQLSTATES:
            return True
        # SQLite reports writer contention this way
        if isinstance(exc, OperationalError) and "database is locked" in str(exc.orig):
            return True
    return False


def is_unique_violation(exc: Exception, column: str) -> bool:
    """True when ``exc`` is a unique-constraint failure on ``column``."""
    if not isinstance(exc, IntegrityError):
        return False
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode is not None and pgcode != errorcodes.UNIQUE_VIOLATION:
        return False
    return column in str(exc.orig)


class DB:
    def __init__(self, env):
        self.user = env.get('user')
        self.password = env.get('password')
        self.host = env.get('host')
        self.port = env.get('port')
        self.dbname = env.get('dbname')

        if env.get('url'):
            self.url = env['url']
        else:
            self.url = URL.create(
                drivername="postgresql+psycopg2",
                username=self.user,
                password=self.password,
                host=self.host,
                port=self.port,
                database=self.dbname,
            )

        engine_options = {"echo": bool(env.get('echo', False))}
        if env.get('isolation_level'):
            engine_options["isolation_level"] = env['isolation_level']
        if env.get('connect_args'):
            engine_options["connect_args"] = env['connect_args']

        self.engine = create_engine(self.url, **engine_options)
        # Objects stay readable after commit; the coordinator hands them back to callers
        self.SessionLocal = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False
        )

    def create_schema(self):
        try:
            create_all(self.engine)
        except OperationalError as e:
            logger.error(f"[DB ERROR] Schema creation failed: {e}")
            raise DatabaseConnectionError(f"Cannot reach database: {e.orig}") from e

    def dispose(self):
        self.engine.dispose()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        One unit of work: every write made through the yielded session
        commits together, or is rolled back if the block raises.
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def getModels(self, modelname: str = None):
        if not modelname:
            raise ValueError("Model name must be provided.")
        
        model_map = {
            'products': Product,
        }

        model = model_map.get(modelname)
        if not model:
            raise ValueError(f"Model '{modelname}' not found.")
        
        return model

    def apply_query_filters(self, stmt, model, query: dict):
        operator_map = {
            "eq": lambda col, val: col == val,
            "ne": lambda col, val: col != val,
            "lt": lambda col, val: col < val,
            "lte": lambda col, val: col <= val,
            "gt": lambda col, val: col > val,
            "gte": lambda col, val: col >= val,
            "like": lambda col, val: col.like(val),
            "ilike": lambda col, val: col.ilike(val),
            "in": lambda col, val: col.in_(val if isinstance(val, (list, tuple, set)) else [val]),
        }

        filters = query.get("filters", [])
        condition_type = query.get("condition", "and").lower()

        conditions = []

        for f in filters:
            field = f.get("field")
            op = f.get("operator", "eq")
            val = f.get("value")

            if not hasattr(model, field):
                raise ValueError(f"'{field}' is not a valid column in model '{model.__name__}'")

            if op not in operator_map:
                raise ValueError(f"Unsupported operator '{op}'")

            conditions.append(operator_map[op](getattr(model, field), val))

        if conditions:
            stmt = stmt.where(or_(*conditions) if condition_type == "or" else and_(*conditions))

        return stmt

    def apply_sort_and_window(self, stmt, model, query: dict):
        sort = query.get("sort", {})
        if isinstance(sort, dict):
            for field, direction in sort.items():
                if not hasattr(model, field):
                    raise ValueError(f"Invalid sort field '{field}' for model '{model.__name__}'")
                col = getattr(model, field)
                stmt = stmt.order_by(col.desc() if direction == -1 else col.asc())

        if query.get("offset"):
            stmt = stmt.offset(query["offset"])
        if query.get("limit"):
            stmt = stmt.limit(query["limit"])
        return stmt

    def listRecords(self, session: Session, modelname: str, query: dict):
        model = self.getModels(modelname)
        stmt = self.apply_query_filters(select(model), model, query)
        stmt = self.apply_sort_and_window(stmt, model, query)
        return list(session.scalars(stmt).unique())

    def countRecords(self, session: Session, modelname: str, query: dict) -> int:
        model = self.getModels(modelname)
        stmt = self.apply_query_filters(select(func.count()).select_from(model), model, query)
        return session.scalar(stmt) or 0
