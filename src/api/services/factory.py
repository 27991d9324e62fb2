"""
Builds the storage, session, metrics and OAuth services once at startup.

The backend choice (JSON file or database, memory or Redis) is made here and
nowhere else; request handlers only see the interfaces.
"""
import logging
from dataclasses import dataclass

from src.api.auth.oauth import OAuthFlow, OAuthSettings
from src.api.database import init_db
from src.api.services.metrics_service import MemoryMetricsStore, MetricsStore, SqlMetricsStore
from src.api.services.project_store import JsonProjectStore, ProjectStore, SqlProjectStore
from src.api.services.session_store import MemorySessionStore, RedisSessionStore, SessionStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    projects: ProjectStore
    sessions: SessionStore
    metrics: MetricsStore
    oauth: OAuthFlow


def build_session_store(config) -> SessionStore:
    redis_url = config.get("session", "redis_url")
    if redis_url:
        logger.info("Session store: Redis")
        return RedisSessionStore.from_url(redis_url)
    logger.info("Session store: in-memory")
    return MemorySessionStore()


def build_services(config) -> Services:
    database_url = config.get("storage", "database_url")
    if database_url:
        session_factory = init_db(database_url)
        projects = SqlProjectStore(session_factory)
        metrics = SqlMetricsStore(session_factory)
        logger.info("Project storage: database")
    else:
        projects = JsonProjectStore(config.get("storage", "projects_file"))
        metrics = MemoryMetricsStore()
        logger.info(f"Project storage: {projects.path}")

    sessions = build_session_store(config)
    oauth = OAuthFlow(OAuthSettings.from_config(config), sessions)
    if not oauth.configured:
        logger.warning("GitHub OAuth is not configured; admin login is disabled")
    return Services(projects=projects, sessions=sessions, metrics=metrics, oauth=oauth)
