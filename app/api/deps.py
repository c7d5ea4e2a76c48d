"""Shared dependencies: JWT actor, role tiers, storage and entitlement."""
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.config import settings
from app.errors import ActorNotFound, PermissionDenied
from app.services.attendance_store import AttendanceRepository, AttendanceStore, BeanieAttendanceRepository
from app.services.daily_attendance import DailyAttendanceGenerator
from app.services.entitlement import Entitlement, EntitlementResolver, FilterComposer
from app.services.roles import Actor, ActorDirectory, BeanieActorDirectory, classify_actor
from app.services.schedule_graph import BeanieScheduleGraph, ScheduleGraphReader
from app.services.summary import SummaryAggregator

security = HTTPBearer(auto_error=False)


# Storage seams; tests override these three.
def get_schedule_graph() -> ScheduleGraphReader:
    return BeanieScheduleGraph()


def get_attendance_repository() -> AttendanceRepository:
    return BeanieAttendanceRepository()


def get_actor_directory() -> ActorDirectory:
    return BeanieActorDirectory()


async def get_actor_id(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> str:
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = jwt.decode(credentials.credentials, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    actor_id = payload.get("sub") or payload.get("userId")
    if not actor_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    return str(actor_id)


async def get_current_actor(
    actor_id: Annotated[str, Depends(get_actor_id)],
    directory: Annotated[ActorDirectory, Depends(get_actor_directory)],
) -> Actor:
    try:
        return await classify_actor(directory, actor_id)
    except ActorNotFound as exc:
        raise ActorNotFound(exc.actor_id, status_code=401)


def require_admin(actor: Annotated[Actor, Depends(get_current_actor)]) -> Actor:
    if not actor.is_admin:
        raise PermissionDenied("Only admins may perform this action")
    return actor


def get_attendance_store(
    repository: Annotated[AttendanceRepository, Depends(get_attendance_repository)],
) -> AttendanceStore:
    return AttendanceStore(repository)


def get_filter_composer(graph: Annotated[ScheduleGraphReader, Depends(get_schedule_graph)]) -> FilterComposer:
    return FilterComposer(graph)


def get_summary_aggregator(
    repository: Annotated[AttendanceRepository, Depends(get_attendance_repository)],
) -> SummaryAggregator:
    return SummaryAggregator(repository)


def get_daily_generator(
    graph: Annotated[ScheduleGraphReader, Depends(get_schedule_graph)],
    store: Annotated[AttendanceStore, Depends(get_attendance_store)],
    directory: Annotated[ActorDirectory, Depends(get_actor_directory)],
) -> DailyAttendanceGenerator:
    return DailyAttendanceGenerator(graph, store, directory)


async def get_entitlement(
    actor: Annotated[Actor, Depends(get_current_actor)],
    graph: Annotated[ScheduleGraphReader, Depends(get_schedule_graph)],
) -> Entitlement:
    return await EntitlementResolver(graph).for_actor(actor)


# Type aliases for route injection
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
AdminOnly = Annotated[Actor, Depends(require_admin)]
ActorEntitlement = Annotated[Entitlement, Depends(get_entitlement)]
Graph = Annotated[ScheduleGraphReader, Depends(get_schedule_graph)]
Directory = Annotated[ActorDirectory, Depends(get_actor_directory)]
Store = Annotated[AttendanceStore, Depends(get_attendance_store)]
Composer = Annotated[FilterComposer, Depends(get_filter_composer)]
Summaries = Annotated[SummaryAggregator, Depends(get_summary_aggregator)]
Generator = Annotated[DailyAttendanceGenerator, Depends(get_daily_generator)]
