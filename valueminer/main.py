import json
import logging
import re
import secrets
import uuid
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, Security, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel

from . import clip_store, config, database
from . import report_service, share_page, shortcut_service, summarizer, transcript_service
from .auth_handler import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    verify_cron_secret,
    verify_token,
    REFRESH_TOKEN_EXPIRE_DAYS,
)
from .email_service import EmailDeliveryError, send_email
from .intake_processor import process_intake_request
from .otp_service import (
    generate_otp,
    store_otp,
    verify_otp,
    send_otp_email,
    OTP_EXPIRY_MINUTES,
)
from .utils import extract_video_id, hash_token, pick_url, utcnow

# ---------------- Logging ----------------
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(levelname)s:     %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "vm_refresh_token"
SESSION_COOKIE_MAX_AGE = 60 * 60 * 24 * REFRESH_TOKEN_EXPIRE_DAYS
TIME_OF_DAY_REGEX = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
DEFAULT_INTAKE_SOURCE = "ios_shortcut"

# ---------------- FastAPI App ----------------
app = FastAPI(title="Value Miner API")


@app.on_event("startup")
async def startup_event():
    await database.test_connection()
    await database.create_indexes()
    logger.info("🚀 Application started successfully")


@app.on_event("shutdown")
async def shutdown_event():
    await database.close_db_connection()


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------- Helper Functions ----------------
def provider_http_error(e) -> HTTPException:
    """Translate a transcript/LLM/email/shortcut error into an HTTP response"""
    details = getattr(e, "details", None)
    detail = {"error": e.message, "details": details} if details else e.message
    return HTTPException(status_code=e.status_code, detail=detail)


async def read_json_body(request: Request):
    try:
        return await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload.")


def bearer_token(request: Request) -> str:
    auth_header = request.headers.get("authorization") or ""
    return auth_header.replace("Bearer ", "", 1).strip()


def set_session_cookie(response: Response, value: str, max_age: int):
    response.set_cookie(
        SESSION_COOKIE_NAME,
        value,
        httponly=True,
        secure=config.ENVIRONMENT == "production",
        samesite="lax",
        path="/",
        max_age=max_age,
    )


async def get_user_email(user_id: str) -> Optional[str]:
    user = await database.users_collection.find_one({"user_id": user_id})
    return user.get("email") if user else None


# ---------------- Pydantic Models ----------------
class UserCreate(BaseModel):
    email: str
    full_name: str


class OTPRequest(BaseModel):
    email: str


class OTPVerify(BaseModel):
    email: str
    otp: str


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None


class MineRequest(BaseModel):
    url: str
    source: Optional[str] = "web"


class SaveClipRequest(BaseModel):
    video_id: str
    title: Optional[str] = "Clip"
    transcript: Optional[str] = ""
    analysis: Optional[str] = ""
    action_plan: list = []
    category: Optional[str] = "Other"
    folder_id: Optional[str] = None
    source: Optional[str] = "web"


class MoveClipRequest(BaseModel):
    folder_id: Optional[str] = None
    folder_name: Optional[str] = None


class FolderCreate(BaseModel):
    name: str


class ReportPreferenceRequest(BaseModel):
    frequency: str = "daily"
    time_of_day: str = "08:00"
    day_of_week: Optional[str] = None
    timezone: str = "UTC"


# ---------------- Authentication Routes ----------------
@app.post("/api/auth/register")
async def register_user(user: UserCreate):
    email = user.email.strip().lower()
    existing_user = await database.users_collection.find_one({"email": email})
    if existing_user:
        raise HTTPException(status_code=400, detail="User already exists")

    user_id = secrets.token_urlsafe(16)
    user_doc = {
        "user_id": user_id,
        "email": email,
        "full_name": user.full_name,
        "verified": False,
        "created_at": utcnow(),
        "updated_at": utcnow(),
    }
    await database.users_collection.insert_one(user_doc)
    return {"message": "User registered. Please verify your email", "user_id": user_id}


@app.post("/api/auth/send-otp")
async def send_otp(request: OTPRequest):
    email = request.email.strip().lower()
    otp = generate_otp()
    await store_otp(email, otp)
    await run_in_threadpool(send_otp_email, email, otp)
    return {"message": "OTP sent successfully to your email", "expires_in": OTP_EXPIRY_MINUTES * 60}


@app.post("/api/auth/verify-otp")
async def verify_otp_endpoint(request: OTPVerify):
    email = request.email.strip().lower()
    if not await verify_otp(email, request.otp):
        raise HTTPException(status_code=400, detail="Invalid OTP")

    user = await database.users_collection.find_one({"email": email})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    await database.users_collection.update_one(
        {"email": email},
        {"$set": {"verified": True, "last_login": utcnow()}},
    )

    access_token = create_access_token(user["user_id"], user["email"])
    refresh_token = create_refresh_token(user["user_id"])

    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "user": {
            "user_id": user["user_id"],
            "email": user["email"],
            "full_name": user["full_name"],
        },
    }


@app.post("/api/auth/refresh")
async def refresh_access_token(request: Request, payload: Optional[RefreshRequest] = None):
    refresh_token = (payload.refresh_token if payload else None) or request.cookies.get(SESSION_COOKIE_NAME)
    if not refresh_token:
        raise HTTPException(status_code=400, detail="Missing refresh token.")

    user_id = decode_refresh_token(refresh_token)["user_id"]
    user = await database.users_collection.find_one({"user_id": user_id})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    new_access_token = create_access_token(user_id, user["email"])
    return {"access_token": new_access_token, "token_type": "bearer"}


@app.post("/api/session")
async def create_session(request: Request):
    try:
        body = await request.json()
    except ValueError:
        body = None
    refresh_token = ""
    if isinstance(body, dict) and isinstance(body.get("refreshToken"), str):
        refresh_token = body["refreshToken"].strip()
    if not refresh_token:
        raise HTTPException(status_code=400, detail="Missing refresh token.")

    user_id = decode_refresh_token(refresh_token)["user_id"]
    if not await database.users_collection.find_one({"user_id": user_id}):
        raise HTTPException(status_code=401, detail="Invalid refresh token.")

    # Rotate so the cookie always carries a full lifetime
    response = JSONResponse({"success": True})
    set_session_cookie(response, create_refresh_token(user_id), SESSION_COOKIE_MAX_AGE)
    return response


@app.delete("/api/session")
async def delete_session():
    response = JSONResponse({"success": True})
    set_session_cookie(response, "", 0)
    return response


@app.get("/api/user/profile")
async def get_profile(token_data: dict = Security(verify_token)):
    user_id = token_data["user_id"]
    user = await database.users_collection.find_one({"user_id": user_id})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    user.pop("_id", None)
    return {"profile": user}


# ---------------- Transcript & Analysis ----------------
@app.post("/api/transcript")
async def get_transcript(request: Request, token_data: dict = Security(verify_token)):
    body = await read_json_body(request)
    url = (body.get("url") or "").strip() if isinstance(body, dict) and isinstance(body.get("url"), str) else ""
    if not url:
        raise HTTPException(status_code=400, detail="Missing YouTube URL.")

    video_id = extract_video_id(url)
    if not video_id:
        raise HTTPException(status_code=400, detail="Unable to parse a valid YouTube video ID.")

    lang = body.get("lang") if isinstance(body.get("lang"), str) else None
    try:
        result = await run_in_threadpool(transcript_service.fetch_transcript, video_id, lang)
    except transcript_service.TranscriptError as e:
        raise provider_http_error(e)

    return {
        "videoId": video_id,
        "transcript": result["transcript"],
        "language": result["language"],
        "transcriptType": result["transcript_type"],
        "source": result["source"],
    }


@app.post("/api/analyze")
async def analyze(request: Request, token_data: dict = Security(verify_token)):
    body = await read_json_body(request)
    text = ""
    if isinstance(body, dict):
        value = body.get("text") or body.get("transcript")
        text = value.strip() if isinstance(value, str) else ""
    if not text:
        raise HTTPException(status_code=400, detail="Missing transcript text.")

    try:
        return await run_in_threadpool(summarizer.analyze_transcript, text, True)
    except summarizer.SummarizerError as e:
        raise provider_http_error(e)


# ---------------- Intake Webhook ----------------
@app.post("/api/intake/youtube")
async def intake_youtube(request: Request):
    request_id = str(uuid.uuid4())
    logger.info(f"[intake] start requestId={request_id}")

    raw_token = bearer_token(request)
    if not raw_token:
        logger.warning(f"[intake] missing token requestId={request_id}")
        raise HTTPException(status_code=401, detail="Missing token.")

    token_doc = await clip_store.find_api_token(hash_token(raw_token))
    if not token_doc or token_doc.get("revoked_at") or not token_doc.get("user_id"):
        logger.warning(f"[intake] invalid token requestId={request_id} hasToken={bool(token_doc)}")
        raise HTTPException(status_code=401, detail="Invalid token.")
    user_id = token_doc["user_id"]

    raw_body = (await request.body()).decode("utf-8", errors="replace")
    try:
        body = json.loads(raw_body) if raw_body else None
    except ValueError:
        # Some Shortcut actions post the shared URL as plain text
        body = raw_body.strip() or None

    if isinstance(body, str):
        url_value = body
    else:
        candidate = body.get("url") if isinstance(body, dict) else None
        url_value = pick_url(candidate if candidate is not None else body)
    if not url_value or not isinstance(url_value, str):
        logger.warning(f"[intake] missing url requestId={request_id} rawBodyPreview={raw_body[:200]!r}")
        raise HTTPException(status_code=400, detail="Missing url.")

    url = url_value
    video_id = extract_video_id(url)
    if not video_id:
        logger.warning(f"[intake] invalid url requestId={request_id} url={url}")
        raise HTTPException(status_code=400, detail="Invalid YouTube URL.")

    source = DEFAULT_INTAKE_SOURCE
    if isinstance(body, dict) and isinstance(body.get("source"), str):
        source = body["source"]
    logger.info(f"[intake] parsed requestId={request_id} videoId={video_id} source={source}")

    if await clip_store.find_clip_by_video(user_id, video_id):
        logger.info(f"[intake] duplicate requestId={request_id} videoId={video_id}")
        return {"success": True, "duplicate": True}

    intake = await clip_store.create_intake_request(user_id, url, video_id, source)

    try:
        _, clip_id = await process_intake_request(
            user_id=user_id,
            url=url,
            source=source,
            intake_id=intake["id"],
        )
    except Exception as e:
        message = str(e) or e.__class__.__name__
        logger.error(f"[intake] processing failed requestId={request_id} message={message}")
        await clip_store.fail_intake_request(intake["id"], message)
        raise HTTPException(status_code=500, detail=message)

    logger.info(f"[intake] success requestId={request_id} clipId={clip_id}")
    return {"success": True, "clipId": clip_id}


# ---------------- Clip Library ----------------
@app.get("/api/clips")
async def get_clips(token_data: dict = Security(verify_token)):
    clips = await clip_store.list_clips(token_data["user_id"])
    return {"clips": clips}


@app.post("/api/clips")
async def save_clip(payload: SaveClipRequest, token_data: dict = Security(verify_token)):
    user_id = token_data["user_id"]
    category = summarizer.normalize_category(payload.category)

    if payload.folder_id:
        if not await clip_store.get_folder(user_id, payload.folder_id):
            raise HTTPException(status_code=404, detail="Folder not found.")
        folder_id = payload.folder_id
    else:
        folder_id = await clip_store.resolve_folder_id(user_id, category)

    clip = await clip_store.insert_clip(
        user_id=user_id,
        video_id=payload.video_id,
        title=payload.title or "Clip",
        transcript=payload.transcript or "",
        analysis=payload.analysis or "",
        action_plan=payload.action_plan,
        category=category,
        folder_id=folder_id,
        source=payload.source,
    )
    return {"clip": clip}


@app.post("/api/clips/mine")
async def mine_clip(payload: MineRequest, token_data: dict = Security(verify_token)):
    user_id = token_data["user_id"]
    video_id = extract_video_id(payload.url)
    if not video_id:
        raise HTTPException(status_code=400, detail="Invalid YouTube URL.")

    existing = await clip_store.find_clip_by_video(user_id, video_id)
    if existing:
        return {"success": True, "duplicate": True, "clip": existing}

    _, clip_id = await process_intake_request(
        user_id=user_id,
        url=payload.url,
        source=payload.source or "web",
    )
    clip = await clip_store.get_clip(user_id, clip_id)
    return {"success": True, "clip": clip}


@app.patch("/api/clips/{clip_id}")
async def move_clip(clip_id: str, payload: MoveClipRequest, token_data: dict = Security(verify_token)):
    user_id = token_data["user_id"]
    folder = None
    if payload.folder_id:
        folder = await clip_store.get_folder(user_id, payload.folder_id)
        if not folder:
            raise HTTPException(status_code=404, detail="Folder not found.")

    category = payload.folder_name or (folder["name"] if folder else None) or summarizer.DEFAULT_CATEGORY
    clip = await clip_store.move_clip(user_id, clip_id, payload.folder_id, category)
    if not clip:
        raise HTTPException(status_code=404, detail="Clip not found.")
    return {"clip": clip}


@app.get("/api/folders")
async def get_folders(token_data: dict = Security(verify_token)):
    user_id = token_data["user_id"]
    await clip_store.ensure_default_folders(user_id)
    return {"folders": await clip_store.list_folders(user_id)}


@app.post("/api/folders")
async def create_folder(payload: FolderCreate, token_data: dict = Security(verify_token)):
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Folder name is required.")
    try:
        folder = await clip_store.create_folder(token_data["user_id"], name)
    except clip_store.DuplicateFolderError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"folder": folder}


# ---------------- Intake Tokens ----------------
@app.post("/api/tokens")
async def issue_token(token_data: dict = Security(verify_token)):
    try:
        return await clip_store.issue_api_token(token_data["user_id"])
    except Exception as e:
        logger.error(f"Token issue failed for {token_data['user_id']}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/tokens")
async def get_token(token_data: dict = Security(verify_token)):
    token = await clip_store.get_active_token(token_data["user_id"])
    if not token:
        return {"token": None}
    return {"token": {"prefix": token["token_prefix"], "created_at": token["created_at"]}}


@app.delete("/api/tokens")
async def revoke_tokens(token_data: dict = Security(verify_token)):
    revoked = await clip_store.revoke_api_tokens(token_data["user_id"])
    return {"revoked": revoked}


@app.get("/api/shortcut")
async def download_shortcut(token: Optional[str] = None):
    token = (token or "").strip()
    if not token:
        raise HTTPException(status_code=400, detail="Missing token.")

    try:
        content = await run_in_threadpool(shortcut_service.build_personalized_shortcut, token)
    except shortcut_service.ShortcutError as e:
        raise provider_http_error(e)

    return Response(
        content,
        media_type="application/octet-stream",
        headers={
            "Content-Disposition": f"attachment; filename={shortcut_service.SHORTCUT_FILENAME}",
            "Cache-Control": "no-store",
        },
    )


# ---------------- Scroll Reports ----------------
@app.get("/api/report/preferences")
async def get_report_preferences(token_data: dict = Security(verify_token)):
    pref = await clip_store.get_report_preference(token_data["user_id"])
    return {"preferences": pref}


@app.put("/api/report/preferences")
async def save_report_preferences(payload: ReportPreferenceRequest, token_data: dict = Security(verify_token)):
    if payload.frequency not in report_service.FREQUENCIES:
        raise HTTPException(status_code=400, detail="Frequency must be daily or weekly.")
    if not TIME_OF_DAY_REGEX.match(payload.time_of_day):
        raise HTTPException(status_code=400, detail="Time of day must be HH:MM.")
    if payload.frequency == report_service.WEEKLY and payload.day_of_week not in report_service.WEEKDAYS:
        raise HTTPException(status_code=400, detail="Weekly reports need a day of the week.")
    if not report_service.is_valid_timezone(payload.timezone):
        raise HTTPException(status_code=400, detail="Unknown timezone.")

    pref = await clip_store.upsert_report_preference(
        token_data["user_id"],
        frequency=payload.frequency,
        time_of_day=payload.time_of_day,
        day_of_week=payload.day_of_week,
        timezone=payload.timezone,
    )
    return {"preferences": pref}


@app.post("/api/report/send")
async def send_report(token_data: dict = Security(verify_token)):
    user_id = token_data["user_id"]
    email = await get_user_email(user_id) or token_data.get("email")
    if not email:
        raise HTTPException(status_code=400, detail="Missing user email.")

    pref = await clip_store.get_report_preference(user_id)
    frequency = (pref or {}).get("frequency") or report_service.DAILY
    now = utcnow()
    clips = await clip_store.clips_since(user_id, report_service.period_start(frequency, now))

    html = report_service.build_report_html(email, clips, report_service.period_label(frequency))
    try:
        await run_in_threadpool(send_email, email, report_service.report_subject(frequency), html)
    except EmailDeliveryError as e:
        raise provider_http_error(e)
    return {"sent": True}


@app.post("/api/report/cron", dependencies=[Depends(verify_cron_secret)])
async def report_cron():
    now = utcnow()
    prefs = await clip_store.list_report_preferences()
    due = [pref for pref in prefs if pref.get("email") and report_service.is_due(pref, now)]

    for pref in due:
        frequency = pref.get("frequency") or report_service.DAILY
        clips = await clip_store.clips_since(pref["user_id"], report_service.period_start(frequency, now))
        html = report_service.build_digest_html(pref["email"], clips, report_service.period_label(frequency))
        try:
            await run_in_threadpool(send_email, pref["email"], report_service.report_subject(frequency), html)
        except EmailDeliveryError as e:
            logger.error(f"Report delivery to {pref['user_id']} failed: {e.message}")
            raise provider_http_error(e)
        await clip_store.mark_report_sent(pref["user_id"], now)

    logger.info(f"📨 Scroll reports sent: {len(due)}")
    return {"sent": len(due)}


# ---------------- Share Page ----------------
@app.get("/s")
async def share(u: Optional[str] = None):
    try:
        html = await run_in_threadpool(share_page.render_share_page, u or "")
    except share_page.ShareUrlError as e:
        return PlainTextResponse(str(e), status_code=400)
    return HTMLResponse(html)


# ---------------- Root ----------------
@app.get("/")
async def root():
    return {"message": "Value Miner API - mine YouTube Shorts into actionable clips"}
