"""
Scroll reports: deciding when a user's report is due and rendering the email.

Preferences store a local ``time_of_day`` (``HH:MM``), an optional English
weekday for weekly reports and an IANA timezone. All "is it due" decisions are
made on the user's local calendar.
"""
import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from html import escape
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .utils import as_utc

logger = logging.getLogger(__name__)

DAILY = "daily"
WEEKLY = "weekly"
FREQUENCIES = (DAILY, WEEKLY)
WEEKDAYS = [
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
]
MAX_DIGEST_CLIPS = 8
MAX_THEMES = 5

BELIEFS = {
    "Business": "Leverage and execution matter more than ideas.",
    "Health": "Small daily choices compound into long-term health.",
    "Mindset": "Identity drives behavior more than willpower.",
    "Politics": "Understanding systems reduces reactive decisions.",
    "Religion": "Meaning is built through practice and reflection.",
    "Productivity": "Consistency beats intensity when pressure rises.",
    "Other": "Clarity comes from doing, not just consuming.",
}
DEFAULT_BELIEF = BELIEFS["Other"]
DEFAULT_STEPS = [
    "Pick one habit tied to this theme.",
    "Attach it to a daily routine you already do.",
    "Track it for 7 days without optimizing.",
]


def get_timezone(name: Optional[str]):
    try:
        return ZoneInfo(name) if name else timezone.utc
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}, using UTC")
        return timezone.utc


def is_valid_timezone(name: str) -> bool:
    try:
        ZoneInfo(name)
        return True
    except (ZoneInfoNotFoundError, ValueError):
        return False


def local_parts(moment: datetime, tz_name: Optional[str]) -> dict:
    local = as_utc(moment).astimezone(get_timezone(tz_name))
    return {
        "date": local.date(),
        "year": local.year,
        "month": local.month,
        "day": local.day,
        "hour": local.hour,
        "minute": local.minute,
        # isoweekday: Monday=1 .. Sunday=7
        "weekday": WEEKDAYS[local.isoweekday() % 7],
    }


def parse_time_of_day(value: str):
    hour_str, minute_str = value.split(":")[:2]
    hour, minute = int(hour_str), int(minute_str)
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"Invalid time of day: {value}")
    return hour, minute


def is_due(pref: dict, now: datetime) -> bool:
    local = local_parts(now, pref.get("timezone"))
    try:
        target_hour, target_minute = parse_time_of_day(pref.get("time_of_day") or "00:00")
    except ValueError:
        logger.warning(f"Skipping report for {pref.get('user_id')}: bad time_of_day {pref.get('time_of_day')!r}")
        return False

    if (local["hour"], local["minute"]) < (target_hour, target_minute):
        return False

    frequency = pref.get("frequency")
    day_of_week = pref.get("day_of_week")
    if frequency == WEEKLY and day_of_week and day_of_week != local["weekday"]:
        return False

    last_sent_at = pref.get("last_sent_at")
    if not last_sent_at:
        return True

    last_local = local_parts(last_sent_at, pref.get("timezone"))
    if local["date"] == last_local["date"]:
        return False
    if frequency == WEEKLY and not day_of_week:
        return (local["date"] - last_local["date"]).days >= 7
    return True


def period_start(frequency: str, now: datetime) -> datetime:
    hours = 24 * 7 if frequency == WEEKLY else 24
    return as_utc(now) - timedelta(hours=hours)


def period_label(frequency: str) -> str:
    return "Weekly" if frequency == WEEKLY else "Daily"


def report_subject(frequency: str) -> str:
    return f"{period_label(frequency)} Value Miner Scroll Report"


def category_counts(clips: list) -> Counter:
    return Counter(clip.get("category") or "Other" for clip in clips)


def _steps_html(steps) -> str:
    return "".join(f"<li>{escape(str(step))}</li>" for step in list(steps)[:3])


def build_digest_html(email: str, clips: list, label: str) -> str:
    """Scheduled digest: category breakdown plus the latest clip cards."""
    counts = category_counts(clips)
    category_summary = "".join(
        f"<li>{escape(category)}: {count}</li>" for category, count in counts.items()
    )

    clip_blocks = "".join(
        f"""
        <div style="margin-bottom:16px;padding:12px;border:1px solid #eee;border-radius:10px;">
          <strong>{escape(clip.get("title") or "Mined Clip")}</strong>
          <div style="color:#6b7280;font-size:12px;margin:4px 0;">{escape(clip.get("category") or "Other")}</div>
          <div style="margin:6px 0;">{escape(clip.get("analysis") or "")}</div>
          <ol style="margin:0;padding-left:18px;color:#374151;font-size:13px;">
            {_steps_html(clip.get("action_plan") or [])}
          </ol>
        </div>
        """
        for clip in clips[:MAX_DIGEST_CLIPS]
    )

    return f"""
    <div style="font-family:Arial, sans-serif; max-width:640px; margin:0 auto; padding:24px;">
      <h2 style="margin-bottom:4px;">Your Scroll Report</h2>
      <p style="color:#6b7280;margin-top:0;">{escape(label)} summary for {escape(email)}</p>
      <h3 style="margin-top:24px;">Category breakdown</h3>
      <ul style="color:#374151;">{category_summary or "<li>No clips this period.</li>"}</ul>
      <h3 style="margin-top:24px;">Top insights</h3>
      {clip_blocks or "<p>No clips mined in this period.</p>"}
    </div>
    """


def get_belief(category: str) -> str:
    return BELIEFS.get(category, DEFAULT_BELIEF)


def get_hook(top_category: str, top_count: int, total: int) -> str:
    if total == 0:
        return "Based on your last 24 hours of scrolling, you mined no clips."
    if top_count >= max(2, total * 0.5):
        return f"Your scroll heavily rewarded {top_category.lower()} and practical execution."
    return "Your scroll rewarded urgency and improvement more than entertainment."


def top_themes(clips: list) -> list:
    # Counter.most_common keeps first-seen order among ties
    return category_counts(clips).most_common(MAX_THEMES)


def build_report_html(email: str, clips: list, label: str) -> str:
    """On-demand report: hook, top themes, per-theme deep dives and a standout clip."""
    total = len(clips)
    themes = top_themes(clips)
    top_category, top_count = themes[0] if themes else ("Other", 0)
    hook = get_hook(top_category, top_count, total)

    theme_list = "".join(
        f"<li><strong>{escape(category)}</strong> ({count} clips)</li>"
        for category, count in themes
    )

    deep_dives = []
    for category, _count in themes:
        sample = next(c for c in clips if (c.get("category") or "Other") == category)
        message = sample.get("analysis") or "Across multiple clips, the core message repeated."
        steps = sample.get("action_plan") or DEFAULT_STEPS
        deep_dives.append(f"""
        <div style="margin-top:16px;padding:14px;border:1px solid #e5e7eb;border-radius:12px;">
          <h4 style="margin:0 0 6px;">{escape(category)} deep dive</h4>
          <p style="margin:0 0 8px;color:#4b5563;"><strong>What these clips were really saying:</strong> {escape(message)}</p>
          <p style="margin:0 0 8px;color:#4b5563;"><strong>Underlying belief:</strong> {escape(get_belief(category))}</p>
          <p style="margin:0 0 6px;"><strong>3-step implementation</strong></p>
          <ol style="margin:0;padding-left:18px;color:#374151;font-size:13px;">{_steps_html(steps)}</ol>
        </div>
        """)

    deep_dives_html = "".join(deep_dives) or '<p style="color:#6b7280;">No clips mined this period.</p>'

    if clips:
        standout = clips[0]
        micro_action = (standout.get("action_plan") or [None])[0] or "Pick one step from this clip and do it today."
        standout_block = f"""
      <div style="margin-top:16px;padding:14px;border:1px solid #e5e7eb;border-radius:12px;">
        <h4 style="margin:0 0 6px;">One clip that mattered most</h4>
        <p style="margin:0 0 8px;"><strong>{escape(standout.get("title") or "Mined Clip")}</strong></p>
        <p style="margin:0 0 8px;color:#4b5563;">{escape(standout.get("analysis") or "")}</p>
        <p style="margin:0;color:#4b5563;"><strong>Micro-action:</strong> {escape(str(micro_action))}</p>
      </div>
        """
    else:
        standout_block = '<p style="color:#6b7280;">No clips mined this period.</p>'

    return f"""
    <div style="font-family:Arial, sans-serif; max-width:680px; margin:0 auto; padding:24px;">
      <h2 style="margin-bottom:4px;">Your Scroll Report</h2>
      <p style="color:#6b7280;margin-top:0;">{escape(label)} summary for {escape(email)}</p>

      <div style="margin-top:16px;padding:14px;border:1px solid #e5e7eb;border-radius:12px;">
        <p style="margin:0;color:#111827;"><strong>What your scroll was training you to become</strong></p>
        <p style="margin:6px 0 0;color:#4b5563;">{escape(hook)}</p>
      </div>

      <div style="margin-top:20px;">
        <h3 style="margin:0 0 8px;">Top themes detected</h3>
        <ul style="color:#374151;margin:0;padding-left:18px;">
          {theme_list or "<li>No clips this period.</li>"}
        </ul>
      </div>

      <div style="margin-top:20px;">
        <h3 style="margin:0 0 8px;">Theme deep dives</h3>
        {deep_dives_html}
      </div>

      <div style="margin-top:20px;">
        {standout_block}
      </div>
    </div>
    """
