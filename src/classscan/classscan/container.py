from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .attendance.factory import AttendanceStrategyFactory
from .attendance.mysql_attendance_repository import MySQLAttendanceRepository
from .attendance.service import AttendanceRecorder
from .audit.mysql_audit_repository import MySQLAuditRepository
from .audit.service import AuditService
from .core.constants import FRAUD_WORKERS, POLICY_CACHE_TTL_SECONDS, TOKEN_SWEEP_INTERVAL_SECONDS, TOKEN_TTL_SECONDS
from .database.connection import DBConfig, DatabaseConnection
from .events.publisher import SessionEventHub
from .excuses.mysql_excuse_repository import MySQLExcuseRepository
from .excuses.service import ExcuseService
from .fraud.dispatcher import FraudCheckDispatcher, FraudDispatcher
from .fraud.mysql_fraud_repository import MySQLFraudRepository
from .fraud.service import FraudService
from .policies.cache import PolicyCache
from .policies.mysql_policy_repository import MySQLPolicyRepository
from .policies.service import PolicyService
from .roster.mysql_roster_repository import MySQLRosterDirectory
from .sessions.mysql_session_repository import MySQLSessionRepository
from .sessions.service import SessionService
from .tokens.mysql_token_repository import MySQLTokenRepository
from .tokens.service import TokenService
from .tokens.sweeper import TokenSweeper


@dataclass(frozen=True)
class Container:
    events: SessionEventHub

    token_service: TokenService
    policy_service: PolicyService
    session_service: SessionService
    fraud_service: FraudService
    fraud_dispatcher: FraudCheckDispatcher
    attendance_recorder: AttendanceRecorder
    excuse_service: ExcuseService
    audit_service: AuditService

    conn: Optional[DatabaseConnection] = None
    token_sweeper: Optional[TokenSweeper] = None


def build_container(
    *,
    db_config: dict,
    token_ttl_seconds: int = TOKEN_TTL_SECONDS,
    policy_cache_ttl_seconds: int = POLICY_CACHE_TTL_SECONDS,
    token_sweep_interval_seconds: int = TOKEN_SWEEP_INTERVAL_SECONDS,
    fraud_workers: int = FRAUD_WORKERS,
) -> Container:
    config = DBConfig(
        host=str(db_config["host"]),
        port=int(db_config.get("port", 3306)),
        user=str(db_config["user"]),
        password=str(db_config["password"]),
        database=str(db_config["database"]),
    )
    conn = DatabaseConnection.get_instance(config)

    roster = MySQLRosterDirectory(conn)
    sessions_repo = MySQLSessionRepository(conn)
    tokens_repo = MySQLTokenRepository(conn)
    attendance_repo = MySQLAttendanceRepository(conn)
    policies_repo = MySQLPolicyRepository(conn)
    fraud_repo = MySQLFraudRepository(conn)
    excuses_repo = MySQLExcuseRepository(conn)
    audit_repo = MySQLAuditRepository(conn)

    events = SessionEventHub()
    audit_service = AuditService(audit_repo)
    token_service = TokenService(tokens_repo, ttl_seconds=token_ttl_seconds)
    policy_service = PolicyService(
        policies_repo,
        roster,
        conn,
        audit_service,
        cache=PolicyCache(ttl_seconds=policy_cache_ttl_seconds),
    )
    session_service = SessionService(sessions_repo, roster, token_service, attendance_repo, conn, events, audit_service)
    fraud_service = FraudService(fraud_repo, fraud_repo)
    fraud_dispatcher = FraudDispatcher(fraud_service, max_workers=fraud_workers)
    attendance_recorder = AttendanceRecorder(
        attendance_repo,
        sessions_repo,
        roster,
        token_service,
        policy_service,
        conn,
        fraud_dispatcher,
        events,
        strategy_factory=AttendanceStrategyFactory(),
    )
    excuse_service = ExcuseService(excuses_repo, sessions_repo, roster, attendance_repo, conn, audit_service)

    return Container(
        events=events,
        token_service=token_service,
        policy_service=policy_service,
        session_service=session_service,
        fraud_service=fraud_service,
        fraud_dispatcher=fraud_dispatcher,
        attendance_recorder=attendance_recorder,
        excuse_service=excuse_service,
        audit_service=audit_service,
        conn=conn,
        token_sweeper=TokenSweeper(token_service, interval_seconds=token_sweep_interval_seconds),
    )
