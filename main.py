import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from bson.errors import InvalidId
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, model_validator
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

import config
import database
from auth import current_user_id, router as auth_router
from calendar_engine import (
    MONTH_NAMES,
    TASK_COLORS,
    WEEKS_PER_YEAR,
    CalendarRangeError,
    default_months,
    default_tasks,
    grid_rows,
    render_grid,
    resolve_global_week,
    start_weekday,
    week_code,
    week_dates,
    week_day_range,
    week_days,
)
from database import (
    DatabaseUnavailable,
    create_document,
    create_documents,
    get_db,
    get_documents,
    serialize,
    to_object_id,
    update_document,
    utcnow,
)
from schemas import Month, WeeklyTask

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"


@asynccontextmanager
async def lifespan(_app: FastAPI):
    if database.db is not None:
        database.ensure_indexes()
    else:
        logger.warning("DATABASE_URL/DATABASE_NAME not set; running without a database")
    yield


app = FastAPI(title="13-Month Planner API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)


@app.exception_handler(DatabaseUnavailable)
async def database_unavailable_handler(_request: Request, _exc: DatabaseUnavailable):
    return JSONResponse(status_code=500, content={"detail": "Database not available"})


@app.exception_handler(CalendarRangeError)
async def calendar_range_handler(_request: Request, exc: CalendarRangeError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(_request: Request, _exc: DuplicateKeyError):
    return JSONResponse(status_code=409, content={"detail": "Record already exists"})


class MonthCreate(BaseModel):
    name: str = Field(..., min_length=1)
    order: int = Field(..., ge=1, le=13)
    start_day: Optional[int] = Field(None, ge=0, le=6)


class MonthUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    order: Optional[int] = Field(None, ge=1, le=13)
    start_day: Optional[int] = Field(None, ge=0, le=6)


class TaskCreate(BaseModel):
    month_id: str
    week_number: Optional[int] = Field(None, ge=1, le=4)
    global_week: Optional[int] = Field(None, ge=1, le=52, description="Week of the year, 1..52")
    days: Optional[List[int]] = None
    color: str = Field(TASK_COLORS[0], pattern=HEX_COLOR)
    task_text: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def one_week_selector(self):
        if (self.week_number is None) == (self.global_week is None):
            raise ValueError("Give exactly one of week_number or global_week")
        return self


class TaskUpdate(BaseModel):
    month_id: Optional[str] = None
    week_number: Optional[int] = Field(None, ge=1, le=4)
    days: Optional[List[int]] = None
    color: Optional[str] = Field(None, pattern=HEX_COLOR)
    task_text: Optional[str] = Field(None, min_length=1)


@app.get("/")
def root():
    return {"message": "13-month planner backend running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    if database.db is not None:
        response["database"] = "✅ Available"
        response["connection_status"] = "Connected"
        try:
            collections = database.db.list_collection_names()
            response["collections"] = collections[:10]
            response["database"] = "✅ Connected & Working"
        except Exception as e:
            logger.warning("Database check failed: %s", e)
            response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"

    response["database_url"] = "✅ Set" if config.DATABASE_URL else "❌ Not Set"
    response["database_name"] = "✅ Set" if config.DATABASE_NAME else "❌ Not Set"
    return response


def _oid(value: str, label: str):
    try:
        return to_object_id(value)
    except InvalidId:
        raise HTTPException(status_code=400, detail=f"Invalid {label} id")


def _find_owned(collection: str, value: str, user_id: str, label: str) -> dict:
    doc = get_db()[collection].find_one({"_id": _oid(value, label), "user_id": user_id})
    if not doc:
        raise HTTPException(status_code=404, detail=f"{label.capitalize()} not found")
    return doc


def _task_schedule(month: dict, week_number: int, days: Optional[List[int]]) -> dict:
    """Dates and day list for a task placed in `week_number` of `month`."""
    first, last = week_day_range(week_number)
    if days is None:
        days = week_days(week_number)
    else:
        outside = [d for d in days if not first <= d <= last]
        if outside:
            raise HTTPException(
                status_code=422,
                detail=f"Days {outside} are outside week {week_number} ({first}-{last})",
            )
        days = sorted(set(days))
    start, end = week_dates(month["order"], week_number, config.CALENDAR_ANCHOR_DATE)
    return {
        "week_number": week_number,
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "days": days,
    }


def _week_info(week: int) -> dict:
    month_order, week_in_month = resolve_global_week(week)
    first, last = week_day_range(week_in_month)
    start, end = week_dates(month_order, week_in_month, config.CALENDAR_ANCHOR_DATE)
    code = week_code(week, year=config.CALENDAR_ANCHOR_DATE.year)
    return {
        "global_week": week,
        "code": code,
        "label": f"{code} {MONTH_NAMES[month_order - 1]}",
        "month_order": month_order,
        "week_in_month": week_in_month,
        "first_day": first,
        "last_day": last,
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
    }


# ------- Calendar -------
@app.get("/api/calendar/weeks")
def list_weeks():
    return [_week_info(week) for week in range(1, WEEKS_PER_YEAR + 1)]


@app.get("/api/calendar/weeks/{week}")
def get_week(week: int):
    return _week_info(week)


# ------- Months -------
@app.get("/api/months")
def list_months(user_id: str = Depends(current_user_id)):
    docs = get_documents("month", {"user_id": user_id}, sort=[("order", ASCENDING)])
    return [serialize(d) for d in docs]


@app.post("/api/months/initialize")
def initialize_months(user_id: str = Depends(current_user_id)):
    months = get_db()["month"]
    created = 0
    for month in default_months(user_id):
        now = utcnow()
        doc = month.model_dump()
        doc.update(created_at=now, updated_at=now)
        try:
            result = months.update_one(
                {"user_id": user_id, "order": month.order},
                {"$setOnInsert": doc},
                upsert=True,
            )
        except DuplicateKeyError:
            # A concurrent initialize inserted it first
            continue
        if result.upserted_id is not None:
            created += 1
    logger.info("Initialized months for user %s (%d created)", user_id, created)
    return list_months(user_id)


@app.get("/api/months/{month_id}")
def get_month(month_id: str, user_id: str = Depends(current_user_id)):
    return serialize(_find_owned("month", month_id, user_id, "month"))


@app.post("/api/months", status_code=201)
def create_month(payload: MonthCreate, user_id: str = Depends(current_user_id)):
    month = Month(
        user_id=user_id,
        name=payload.name,
        order=payload.order,
        start_day=start_weekday(payload.order) if payload.start_day is None else payload.start_day,
    )
    inserted_id = create_document("month", month)
    return serialize(get_db()["month"].find_one({"_id": to_object_id(inserted_id)}))


@app.put("/api/months/{month_id}")
def update_month(month_id: str, payload: MonthUpdate, user_id: str = Depends(current_user_id)):
    month = _find_owned("month", month_id, user_id, "month")

    fields = payload.model_dump(exclude_none=True)
    order_changed = "order" in fields and fields["order"] != month["order"]
    if order_changed and "start_day" not in fields:
        fields["start_day"] = start_weekday(fields["order"])
    if fields:
        update_document("month", month["_id"], fields)

    if order_changed:
        # Task dates are derived from the month's position in the year
        month.update(fields)
        for task in get_documents("weeklytask", {"month_id": month_id, "user_id": user_id}):
            schedule = _task_schedule(month, task["week_number"], task.get("days"))
            update_document("weeklytask", task["_id"], schedule)

    return serialize(get_db()["month"].find_one({"_id": month["_id"]}))


@app.delete("/api/months/{month_id}", status_code=204)
def delete_month(month_id: str, user_id: str = Depends(current_user_id)):
    month = _find_owned("month", month_id, user_id, "month")
    store = get_db()
    store["month"].delete_one({"_id": month["_id"]})
    removed = store["weeklytask"].delete_many({"month_id": month_id, "user_id": user_id})
    logger.info("Deleted month %s and %d tasks", month_id, removed.deleted_count)


@app.get("/api/months/{month_id}/grid")
def get_month_grid(month_id: str, user_id: str = Depends(current_user_id)):
    month = _find_owned("month", month_id, user_id, "month")
    cells = render_grid(month["start_day"], month["days"])
    return {
        "month_id": month_id,
        "start_day": month["start_day"],
        "days": month["days"],
        "cells": cells,
        "rows": grid_rows(cells),
    }


@app.get("/api/months/{month_id}/tasks")
def list_month_tasks(month_id: str, user_id: str = Depends(current_user_id)):
    _find_owned("month", month_id, user_id, "month")
    docs = get_documents(
        "weeklytask",
        {"month_id": month_id, "user_id": user_id},
        sort=[("week_number", ASCENDING), ("created_at", ASCENDING)],
    )
    return [serialize(d) for d in docs]


# ------- Weekly tasks -------
@app.post("/api/tasks/initialize")
def initialize_tasks(user_id: str = Depends(current_user_id)):
    months = get_documents("month", {"user_id": user_id}, sort=[("order", ASCENDING)])
    seeded = set(get_db()["weeklytask"].distinct("month_id", {"user_id": user_id}))
    pending = []
    for month in months:
        month_id = str(month["_id"])
        if month_id in seeded:
            continue
        # Claim the month; a concurrent initialize that loses the claim skips it
        claimed = get_db()["month"].update_one(
            {"_id": month["_id"], "tasks_seeded": {"$ne": True}},
            {"$set": {"tasks_seeded": True}},
        )
        if claimed.modified_count:
            pending.append((month_id, month["order"]))
    created = create_documents("weeklytask", default_tasks(user_id, pending, config.CALENDAR_ANCHOR_DATE))
    logger.info("Initialized %d tasks for user %s", len(created), user_id)

    docs = get_documents("weeklytask", {"user_id": user_id})
    order_by_month = {str(m["_id"]): m["order"] for m in months}
    docs.sort(key=lambda d: (order_by_month.get(d["month_id"], 0), d["week_number"]))
    return [serialize(d) for d in docs]


@app.get("/api/tasks/{task_id}")
def get_task(task_id: str, user_id: str = Depends(current_user_id)):
    return serialize(_find_owned("weeklytask", task_id, user_id, "task"))


@app.post("/api/tasks", status_code=201)
def create_task(payload: TaskCreate, user_id: str = Depends(current_user_id)):
    month = _find_owned("month", payload.month_id, user_id, "month")
    week_number = payload.week_number
    if payload.global_week is not None:
        month_order, week_number = resolve_global_week(payload.global_week)
        if month_order != month["order"]:
            raise HTTPException(
                status_code=422,
                detail=f"Week {payload.global_week} belongs to month {month_order}, not {month['order']}",
            )
    task = WeeklyTask(
        user_id=user_id,
        month_id=payload.month_id,
        color=payload.color,
        task_text=payload.task_text.strip(),
        **_task_schedule(month, week_number, payload.days),
    )
    inserted_id = create_document("weeklytask", task)
    return serialize(get_db()["weeklytask"].find_one({"_id": to_object_id(inserted_id)}))


@app.put("/api/tasks/{task_id}")
def update_task(task_id: str, payload: TaskUpdate, user_id: str = Depends(current_user_id)):
    task = _find_owned("weeklytask", task_id, user_id, "task")

    fields = payload.model_dump(exclude_none=True)
    if "task_text" in fields:
        fields["task_text"] = fields["task_text"].strip()

    month_id = fields.get("month_id", task["month_id"])
    week_number = fields.get("week_number", task["week_number"])
    if {"month_id", "week_number", "days"} & fields.keys():
        month = _find_owned("month", month_id, user_id, "month")
        # A new week resets the day list unless one is given
        days = fields.get("days")
        if days is None and week_number == task["week_number"]:
            days = task.get("days")
        fields.update(_task_schedule(month, week_number, days))

    if fields:
        update_document("weeklytask", task["_id"], fields)
    return serialize(get_db()["weeklytask"].find_one({"_id": task["_id"]}))


@app.delete("/api/tasks/{task_id}", status_code=204)
def delete_task(task_id: str, user_id: str = Depends(current_user_id)):
    task = _find_owned("weeklytask", task_id, user_id, "task")
    get_db()["weeklytask"].delete_one({"_id": task["_id"]})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
