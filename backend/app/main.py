"""OpsDesk - FastAPI Application.

Task and notes tracking for IT operations, with a summary dashboard and
at-most-once alerts for critical and scheduled tasks.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from fastapi import FastAPI, HTTPException, Depends, Header, Response
from pydantic import BaseModel, Field
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.orm import Session

from .alert_service import AlertService
from .config import get_settings
from .dashboard import build_dashboard
from .enums import Category, Priority, TaskStatus
from .filters import by_priority, filter_notes, filter_tasks, newest_first, parse_tags
from .models import Note, Task, init_db, get_db
from .notifier import SlackNotifier

# Configure logging
settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Scheduler for alert polling
scheduler = AsyncIOScheduler()
notifier = SlackNotifier()
alerts = AlertService(scheduler, notifier=notifier)


# =============================================================================
# Helper Functions
# =============================================================================


def get_current_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Resolve the row owner. There is no authentication."""
    return x_user_id or settings.default_user_id


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize an incoming timestamp to the naive UTC the database stores."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def get_user_task(db: Session, task_id: str, user_id: str) -> Task:
    task = db.query(Task).filter(Task.id == task_id, Task.user_id == user_id).first()
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


def get_user_note(db: Session, note_id: str, user_id: str) -> Note:
    note = db.query(Note).filter(Note.id == note_id, Note.user_id == user_id).first()
    if not note:
        raise HTTPException(status_code=404, detail="Note not found")
    return note


# =============================================================================
# App Lifecycle
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting OpsDesk...")
    init_db()

    notifier.request_permission()
    alerts.engine_for(settings.default_user_id)
    alerts.start()

    scheduler.start()
    logger.info("Scheduler started")

    yield

    # Shutdown
    alerts.stop_all()
    scheduler.shutdown()
    logger.info("OpsDesk stopped")


app = FastAPI(
    title="OpsDesk",
    description="Task and notes dashboard for IT operations",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# Pydantic Models
# =============================================================================


class TaskResponse(BaseModel):
    id: str
    title: str
    description: Optional[str]
    category: str
    priority: str
    status: str
    alert_time: Optional[datetime]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class CreateTaskRequest(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    category: Category
    priority: Priority
    status: Optional[TaskStatus] = None
    alert_time: Optional[datetime] = None


class UpdateTaskRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    category: Optional[Category] = None
    priority: Optional[Priority] = None
    status: Optional[TaskStatus] = None
    alert_time: Optional[datetime] = None


# Columns that cannot be cleared by a partial update
REQUIRED_TASK_FIELDS = ("title", "category", "priority", "status")


class StatusRequest(BaseModel):
    status: TaskStatus


class NoteResponse(BaseModel):
    id: str
    title: str
    content: Optional[str]
    tags: list[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class NoteRequest(BaseModel):
    title: str = Field(min_length=1)
    content: Optional[str] = None
    tags: Union[list[str], str] = []


class DashboardStatsResponse(BaseModel):
    pending: int
    in_progress: int
    completed_today: int
    critical: int
    scheduled_alerts: int
    notes: int


class DashboardResponse(BaseModel):
    stats: DashboardStatsResponse
    recent_tasks: list[TaskResponse]


class AlertResponse(BaseModel):
    seq: int
    title: str
    body: str
    severity: str
    task_id: Optional[str]
    created_at: datetime


class CheckResponse(BaseModel):
    critical: int
    scheduled: int


# =============================================================================
# API Routes
# =============================================================================


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.utcnow().isoformat()}


@app.get("/tasks", response_model=list[TaskResponse])
async def get_tasks(
    search: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    sort: str = "created",
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    """List the user's tasks, newest first, with optional filters."""
    tasks = db.query(Task).filter(Task.user_id == user_id).all()
    tasks = filter_tasks(
        tasks, search=search, category=category, status=status, priority=priority
    )
    return by_priority(tasks) if sort == "priority" else newest_first(tasks)


@app.post("/tasks", response_model=TaskResponse, status_code=201)
async def create_task(
    request: CreateTaskRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    """Create a task. A task with an alert time starts out scheduled."""
    if request.status:
        status = request.status.value
    elif request.alert_time:
        status = TaskStatus.SCHEDULED.value
    else:
        status = TaskStatus.PENDING.value

    task = Task(
        user_id=user_id,
        title=request.title,
        description=request.description,
        category=request.category.value,
        priority=request.priority.value,
        status=status,
        alert_time=to_naive_utc(request.alert_time),
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    logger.info(f"Created task {task.id} for {user_id}")

    alerts.refresh(user_id)
    return task


@app.patch("/tasks/{task_id}/status", response_model=TaskResponse)
async def update_task_status(
    task_id: str,
    request: StatusRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    """Change a task's status."""
    task = get_user_task(db, task_id, user_id)
    task.status = request.status.value
    task.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(task)
    logger.info(f"Task {task_id} -> {task.status}")

    alerts.refresh(user_id)
    return task


@app.patch("/tasks/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: str,
    request: UpdateTaskRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    """Update the given fields of a task."""
    task = get_user_task(db, task_id, user_id)

    changes = request.model_dump(exclude_unset=True)
    for field_name in REQUIRED_TASK_FIELDS:
        if field_name in changes and changes[field_name] is None:
            raise HTTPException(
                status_code=400, detail=f"{field_name.capitalize()} cannot be empty"
            )

    for field_name, value in changes.items():
        if field_name == "alert_time":
            value = to_naive_utc(value)
        elif isinstance(value, Enum):
            value = value.value
        setattr(task, field_name, value)

    task.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(task)

    alerts.refresh(user_id)
    return task


@app.delete("/tasks/{task_id}", status_code=204)
async def delete_task(
    task_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    """Delete a task."""
    task = get_user_task(db, task_id, user_id)
    db.delete(task)
    db.commit()
    logger.info(f"Deleted task {task_id}")

    alerts.refresh(user_id)
    return Response(status_code=204)


@app.get("/notes", response_model=list[NoteResponse])
async def get_notes(
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    """List the user's notes, newest first."""
    notes = db.query(Note).filter(Note.user_id == user_id).all()
    return newest_first(filter_notes(notes, search))


@app.post("/notes", response_model=NoteResponse, status_code=201)
async def create_note(
    request: NoteRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    """Create a note."""
    note = Note(
        user_id=user_id,
        title=request.title,
        content=request.content,
    )
    note.tags = parse_tags(request.tags)
    db.add(note)
    db.commit()
    db.refresh(note)
    return note


@app.put("/notes/{note_id}", response_model=NoteResponse)
async def update_note(
    note_id: str,
    request: NoteRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    """Replace a note's title, content and tags."""
    note = get_user_note(db, note_id, user_id)
    note.title = request.title
    note.content = request.content
    note.tags = parse_tags(request.tags)
    note.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(note)
    return note


@app.delete("/notes/{note_id}", status_code=204)
async def delete_note(
    note_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    """Delete a note."""
    note = get_user_note(db, note_id, user_id)
    db.delete(note)
    db.commit()
    return Response(status_code=204)


@app.get("/dashboard", response_model=DashboardResponse)
async def get_dashboard(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    """Headline counts and the most recent tasks."""
    tasks = db.query(Task).filter(Task.user_id == user_id).all()
    note_count = db.query(Note).filter(Note.user_id == user_id).count()
    dashboard = build_dashboard(tasks, note_count=note_count)

    return DashboardResponse(
        stats=DashboardStatsResponse(**asdict(dashboard.stats)),
        recent_tasks=[TaskResponse.model_validate(t) for t in dashboard.recent_tasks],
    )


@app.get("/alerts", response_model=list[AlertResponse])
async def get_alerts(
    after: int = 0,
    user_id: str = Depends(get_current_user),
):
    """Alerts raised after sequence number `after`, oldest first.

    The first read for a user starts their alert engine.
    """
    alerts.engine_for(user_id)
    return [
        AlertResponse(
            seq=entry.seq,
            title=entry.alert.title,
            body=entry.alert.body,
            severity=entry.alert.severity.value,
            task_id=entry.alert.task_id,
            created_at=entry.alert.created_at,
        )
        for entry in alerts.feed_for(user_id).since(after)
    ]


@app.post("/alerts/check", response_model=CheckResponse)
async def force_check(user_id: str = Depends(get_current_user)):
    """Run both alert checks now."""
    engine = alerts.engine_for(user_id)
    critical = engine.check_critical()
    scheduled = engine.check_scheduled()
    return CheckResponse(critical=len(critical), scheduled=len(scheduled))


@app.delete("/alerts", status_code=204)
async def unsubscribe_alerts(user_id: str = Depends(get_current_user)):
    """Stop the user's alert engine and drop their feed."""
    alerts.stop(user_id)
    return Response(status_code=204)
