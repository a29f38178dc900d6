import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from timesheet import config, database
from timesheet.api import announcements, auth, branches, notify, schedules, time_entries, users
from timesheet.database import SlotBusyError
from timesheet.shift_time import ShiftValidationError

logger = logging.getLogger("api")
logging.basicConfig(level=logging.INFO)

app = FastAPI(title="King Kebab - Time Tracking & Scheduling API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Master-Key"],
    expose_headers=["Content-Disposition"],
)

for module in (auth, users, time_entries, schedules, branches, announcements, notify):
    app.include_router(module.router)


@app.on_event("startup")
def connect_database():
    database.start_connection_thread()


# -----------------
# Error rendering
# -----------------

@app.exception_handler(StarletteHTTPException)
def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
def request_validation_error(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(part) for part in err["loc"] if part != "body"), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"message": "Validation error", "details": details})


@app.exception_handler(ShiftValidationError)
def shift_validation_error(request: Request, exc: ShiftValidationError):
    return JSONResponse(status_code=400, content={"message": "Validation error", "details": str(exc)})


@app.exception_handler(SlotBusyError)
def slot_busy(request: Request, exc: SlotBusyError):
    logger.warning("Concurrent schedule write rejected: %s", exc)
    return JSONResponse(status_code=409, content={"message": "Schedule is being changed by another request, try again"})


@app.exception_handler(Exception)
def unhandled_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Something went wrong!"})


# -----------------
# Health
# -----------------

@app.get("/")
def read_root():
    return {"message": "Time tracking API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if config.MONGODB_URI else "❌ Not Set",
        "database_name": config.DATABASE_NAME,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        response["collections"] = database.db.list_collection_names()
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response
