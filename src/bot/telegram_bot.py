"""
Listify: Telegram Bot.

Telegram is the user interface: every command is a thin wrapper around
ListifyService that renders the returned records as chat messages. No
scoring logic lives here.

Access can be restricted with ALLOWED_USER_IDS; strangers are silently
ignored.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, time as dt_time, timedelta
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine
from zoneinfo import ZoneInfo

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
)
from telegram.helpers import escape_markdown

from src.config import settings
from src.core.errors import ListifyError
from src.core.ranks import next_rank

if TYPE_CHECKING:
    from src.core.analytics import Analytics
    from src.core.listify_service import ListifyService
    from src.core.profiles import LeaderboardEntry
    from src.core.scoring import CompletionResult
    from src.data.models import Profile, Task

logger = logging.getLogger(__name__)

_DEADLINE_FORMATS = ("%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M", "%Y-%m-%d")


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def _is_allowed(user_id: int) -> bool:
    return not settings.ALLOWED_USER_IDS or user_id in settings.ALLOWED_USER_IDS


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that silently ignores messages from users outside ALLOWED_USER_IDS."""

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if user is None or not _is_allowed(user.id):
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return  # Silent ignore
        return await func(update, context)

    return wrapper


def _service(context: ContextTypes.DEFAULT_TYPE) -> ListifyService:
    return context.bot_data["service"]


def _owner(update: Update) -> str:
    return str(update.effective_user.id)


def _md(text: str) -> str:
    return escape_markdown(text, version=1)


# ---------------------------------------------------------------------------
# Parsing and formatting helpers
# ---------------------------------------------------------------------------


def _parse_deadline(raw: str) -> datetime | None:
    """Parse "YYYY-MM-DD HH:MM" (or a bare date, meaning 23:59 that day)."""
    raw = raw.strip()
    for fmt in _DEADLINE_FORMATS:
        try:
            parsed = datetime.strptime(raw, fmt)
        except ValueError:
            continue
        if fmt == "%Y-%m-%d":
            parsed = parsed.replace(hour=23, minute=59)
        return parsed
    return None


def _parse_addtask(text: str) -> tuple[str, datetime, list[str]] | None:
    """Split "/addtask Title | 2026-10-20 18:00 | sub one; sub two".

    Returns (title, naive deadline, subtasks) or None if malformed.
    """
    parts = [p.strip() for p in text.split("|")]
    if len(parts) < 2 or not parts[0]:
        return None
    deadline = _parse_deadline(parts[1])
    if deadline is None:
        return None
    subtasks: list[str] = []
    if len(parts) > 2:
        subtasks = [s.strip() for s in parts[2].split(";") if s.strip()]
    return parts[0], deadline, subtasks


def _format_when(moment: datetime | None, tz: Any) -> str:
    if moment is None:
        return "no deadline"
    return moment.astimezone(tz).strftime("%Y-%m-%d %H:%M")


def _format_task(task: Task, tz: Any) -> str:
    mark = "✅" if task.completed else "▫️"
    line = f"{mark} `{task.id}` {_md(task.title)} (due {_format_when(task.deadline, tz)})"
    for sub in task.subtasks:
        sub_mark = "☑️" if sub.completed else "⬜"
        line += f"\n      {sub_mark} `{sub.id}` {_md(sub.text)}"
    return line


def _format_completion(result: CompletionResult) -> str:
    verdict = "on time" if result.on_time else "late"
    lines = [
        f"✅ Completed *{_md(result.task.title)}* ({verdict})",
        f"+{result.points_earned} points → {result.profile.points} total",
        f"Rank: {result.profile.rank}",
        f"🔥 Streak: {result.streak.streak} day(s) (best {result.streak.longest_streak})",
    ]
    return "\n".join(lines)


def _format_profile(profile: Profile) -> str:
    lines = [
        f"*{_md(profile.name)}*",
        f"Rank: {profile.rank} ({profile.points} points)",
    ]
    upcoming = next_rank(profile.points)
    if upcoming is not None:
        tier, needed = upcoming
        lines.append(f"Next: {tier} in {needed} points")
    lines += [
        f"🔥 Streak: {profile.streak} (best {profile.longest_streak})",
        f"Tasks completed: {profile.total_tasks_completed} "
        f"({profile.tasks_completed_on_time} on time)",
    ]
    if profile.purchased_items:
        lines.append(f"Owned rewards: {_md(', '.join(profile.purchased_items))}")
    return "\n".join(lines)


def _format_leaderboard(entries: list[LeaderboardEntry], title: str, me: str) -> str:
    if not entries:
        return "The leaderboard is empty."
    lines = [f"*{title}*\n"]
    for pos, entry in enumerate(entries, start=1):
        you = " (you)" if entry.id == me else ""
        lines.append(
            f"{pos}. {_md(entry.name)}{you}: {entry.points} pts, "
            f"{entry.rank}, 🔥{entry.streak}"
        )
    return "\n".join(lines)


def _format_analytics(stats: Analytics) -> str:
    lines = [
        "*Your progress*\n",
        f"Tasks: {stats.completed_tasks}/{stats.total_tasks} completed "
        f"({stats.completion_rate:.0f}%)",
        f"On-time rate: {stats.on_time_rate:.0f}%",
        f"🔥 Streak: {stats.streak} (best {stats.longest_streak})",
        "",
        "Last 7 days:",
    ]
    for day in stats.daily:
        lines.append(f"  {day.date.strftime('%a %d')}: {day.completed} done, {day.on_time} on time")
    return "\n".join(lines)


async def _reply_error(update: Update, exc: Exception, action: str) -> None:
    """Rejected actions get their message back; anything else gets an apology."""
    if isinstance(exc, ListifyError):
        logger.info("%s rejected for user %s: %s", action, _owner(update), exc)
        await update.message.reply_text(f"⚠️ {exc}")
    else:
        logger.error("%s error: %s", action, exc)
        await update.message.reply_text("Something went wrong. Please try again.")


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start: create the profile and greet the user."""
    service = _service(context)
    owner = _owner(update)
    profile = service.get_profile(owner)
    first_name = update.effective_user.first_name
    if profile.name == "New User" and first_name:
        service.update_profile(owner, {"name": first_name})

    await update.message.reply_text(
        "Welcome to *Listify*!\n\n"
        "Finish tasks before their deadline to earn points:\n"
        "• 5 points for every completed task, +15 when it is on time\n"
        "• One on-time task a day keeps your streak alive\n"
        "• Climb from Bronze to Legendary and spend points in the /store\n\n"
        "Type /help for the full command list.",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help: list available commands."""
    await update.message.reply_text(
        "Available commands:\n"
        "/addtask Title | YYYY-MM-DD HH:MM | sub one; sub two\n"
        "/tasks: list your tasks\n"
        "/done [task_id]: complete a task\n"
        "/deltask: delete a task\n"
        "/subtask <task_id> <subtask_id>: toggle a subtask\n"
        "/profile: points, rank and streak\n"
        "/setname <name>, /setemail <email>\n"
        "/leaderboard [friends]\n"
        "/addfriend <email>, /friends\n"
        "/store, /buy <reward_id>\n"
        "/stats: your progress\n"
        "/help: show this message"
    )


# ---------------------------------------------------------------------------
# Task commands
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_addtask(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /addtask Title | deadline | subtasks."""
    parsed = _parse_addtask(" ".join(context.args or []))
    if parsed is None:
        await update.message.reply_text(
            "Usage: /addtask Title | YYYY-MM-DD HH:MM | optional; subtasks\n"
            "The deadline cannot be changed later."
        )
        return

    title, deadline, subtasks = parsed
    service = _service(context)
    try:
        task = service.create_task(_owner(update), title, deadline, subtasks=subtasks)
    except Exception as exc:
        await _reply_error(update, exc, "/addtask")
        return

    await update.message.reply_text(
        f"📝 Added:\n{_format_task(task, service.tz)}",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_tasks(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /tasks: active tasks first, then recently completed ones."""
    service = _service(context)
    try:
        tasks = service.list_tasks(_owner(update))
    except Exception as exc:
        await _reply_error(update, exc, "/tasks")
        return

    if not tasks:
        await update.message.reply_text("No tasks yet. Add one with /addtask.")
        return

    lines = ["*Your tasks:*\n"]
    lines += [_format_task(t, service.tz) for t in tasks]
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_done(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /done [task_id]: complete directly, or pick from buttons."""
    service = _service(context)
    owner = _owner(update)

    if context.args:
        try:
            result = service.complete_task(owner, context.args[0])
        except Exception as exc:
            await _reply_error(update, exc, "/done")
            return
        await update.message.reply_text(_format_completion(result), parse_mode="Markdown")
        return

    active = [t for t in service.list_tasks(owner) if not t.completed]
    if not active:
        await update.message.reply_text("No open tasks. Add one with /addtask.")
        return

    keyboard = [
        [InlineKeyboardButton(t.title, callback_data=f"done:{t.id}")]
        for t in active
    ]
    await update.message.reply_text(
        "Which task did you finish?",
        reply_markup=InlineKeyboardMarkup(keyboard),
    )


async def _handle_done_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Handle the inline button tap to complete a task."""
    query = update.callback_query
    await query.answer()

    user = query.from_user
    if user is None or not _is_allowed(user.id):
        return

    task_id = query.data.split(":", 1)[1]
    try:
        result = _service(context).complete_task(str(user.id), task_id)
    except ListifyError as exc:
        await query.edit_message_text(f"⚠️ {exc}")
        return
    except Exception as exc:
        logger.error("done callback error: %s", exc)
        await query.edit_message_text("Something went wrong. Please try again.")
        return

    await query.edit_message_text(_format_completion(result), parse_mode="Markdown")


@authorized_only
async def cmd_deltask(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /deltask: show tasks as buttons to pick from."""
    service = _service(context)
    tasks = service.list_tasks(_owner(update))
    if not tasks:
        await update.message.reply_text("No tasks to delete.")
        return

    keyboard = [
        [InlineKeyboardButton(("✅ " if t.completed else "") + t.title, callback_data=f"deltask:{t.id}")]
        for t in tasks
    ]
    await update.message.reply_text(
        "Which task do you want to delete?",
        reply_markup=InlineKeyboardMarkup(keyboard),
    )


async def _handle_deltask_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Handle the inline button tap to delete a task."""
    query = update.callback_query
    await query.answer()

    user = query.from_user
    if user is None or not _is_allowed(user.id):
        return

    task_id = query.data.split(":", 1)[1]
    service = _service(context)
    try:
        task = service.tasks.get(str(user.id), task_id)
        service.delete_task(str(user.id), task_id)
    except ListifyError as exc:
        await query.edit_message_text(f"⚠️ {exc}")
        return
    except Exception as exc:
        logger.error("deltask callback error: %s", exc)
        await query.edit_message_text("Something went wrong. Please try again.")
        return

    await query.edit_message_text(f"🗑 Task *{_md(task.title)}* deleted.", parse_mode="Markdown")


@authorized_only
async def cmd_subtask(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /subtask <task_id> <subtask_id>."""
    args = context.args or []
    if len(args) != 2:
        await update.message.reply_text("Usage: /subtask <task_id> <subtask_id>\nUse /tasks to see IDs.")
        return

    service = _service(context)
    try:
        task = service.toggle_subtask(_owner(update), args[0], args[1])
    except Exception as exc:
        await _reply_error(update, exc, "/subtask")
        return
    await update.message.reply_text(_format_task(task, service.tz), parse_mode="Markdown")


# ---------------------------------------------------------------------------
# Profile and social commands
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_profile(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /profile."""
    profile = _service(context).get_profile(_owner(update))
    await update.message.reply_text(_format_profile(profile), parse_mode="Markdown")


async def _update_profile_field(
    update: Update, context: ContextTypes.DEFAULT_TYPE, field: str, command: str,
) -> None:
    value = " ".join(context.args or []).strip()
    if not value:
        await update.message.reply_text(f"Usage: /{command} <{field}>")
        return
    try:
        profile = _service(context).update_profile(_owner(update), {field: value})
    except Exception as exc:
        await _reply_error(update, exc, f"/{command}")
        return
    await update.message.reply_text(f"Saved. {field.capitalize()}: {getattr(profile, field)}")


@authorized_only
async def cmd_setname(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /setname <name>."""
    await _update_profile_field(update, context, "name", "setname")


@authorized_only
async def cmd_setemail(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /setemail <email>: friends find you by this address."""
    await _update_profile_field(update, context, "email", "setemail")


@authorized_only
async def cmd_leaderboard(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /leaderboard [friends]."""
    service = _service(context)
    owner = _owner(update)
    if context.args and context.args[0].lower() == "friends":
        text = _format_leaderboard(service.get_friends_leaderboard(owner), "Friends leaderboard", owner)
    else:
        text = _format_leaderboard(service.get_global_leaderboard(), "Global leaderboard", owner)
    await update.message.reply_text(text, parse_mode="Markdown")


@authorized_only
async def cmd_addfriend(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /addfriend <email>."""
    if not context.args:
        await update.message.reply_text("Usage: /addfriend <email>")
        return
    try:
        _service(context).add_friend(_owner(update), context.args[0])
    except Exception as exc:
        await _reply_error(update, exc, "/addfriend")
        return
    await update.message.reply_text("🤝 Friend added. See /leaderboard friends.")


@authorized_only
async def cmd_friends(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /friends."""
    friends = _service(context).get_friends(_owner(update))
    if not friends:
        await update.message.reply_text("You don't follow anyone yet. Use /addfriend <email>.")
        return
    lines = ["*Friends:*\n"]
    lines += [f"• {_md(f.name)}: {f.points} pts, {f.rank}, 🔥{f.streak}" for f in friends]
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


# ---------------------------------------------------------------------------
# Store and stats
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_store(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /store: the reward catalog with owned items marked."""
    service = _service(context)
    profile = service.get_profile(_owner(update))
    lines = [f"*Reward store* (you have {profile.points} points)\n"]
    for reward in service.get_rewards():
        owned = " ✅" if reward.id in profile.purchased_items else ""
        lines.append(
            f"{reward.icon} `{reward.id}` {_md(reward.name)} ({reward.type.value}): "
            f"{reward.price} pts{owned}"
        )
    lines.append("\nBuy with /buy <reward_id>")
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_buy(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /buy <reward_id>."""
    if not context.args:
        await update.message.reply_text("Usage: /buy <reward_id>\nUse /store to see IDs.")
        return
    try:
        profile = _service(context).purchase_reward(_owner(update), context.args[0])
    except Exception as exc:
        await _reply_error(update, exc, "/buy")
        return
    await update.message.reply_text(
        f"🎁 Purchased {context.args[0]}. {profile.points} points left ({profile.rank})."
    )


@authorized_only
async def cmd_stats(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /stats."""
    stats = _service(context).get_analytics(_owner(update))
    await update.message.reply_text(_format_analytics(stats), parse_mode="Markdown")


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(service: ListifyService | None = None) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        service: Listify service. Defaults to one backed by the SQLite store
                 at DATABASE_PATH.
    """
    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    if service is None:
        from src.core.listify_service import ListifyService
        from src.data.db import ListifyDB

        service = ListifyService(ListifyDB())

    app.bot_data["service"] = service

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("addtask", cmd_addtask))
    app.add_handler(CommandHandler("tasks", cmd_tasks))
    app.add_handler(CommandHandler("done", cmd_done))
    app.add_handler(CommandHandler("deltask", cmd_deltask))
    app.add_handler(CommandHandler("subtask", cmd_subtask))
    app.add_handler(CommandHandler("profile", cmd_profile))
    app.add_handler(CommandHandler("setname", cmd_setname))
    app.add_handler(CommandHandler("setemail", cmd_setemail))
    app.add_handler(CommandHandler("leaderboard", cmd_leaderboard))
    app.add_handler(CommandHandler("addfriend", cmd_addfriend))
    app.add_handler(CommandHandler("friends", cmd_friends))
    app.add_handler(CommandHandler("store", cmd_store))
    app.add_handler(CommandHandler("buy", cmd_buy))
    app.add_handler(CommandHandler("stats", cmd_stats))
    app.add_handler(CallbackQueryHandler(_handle_done_callback, pattern=r"^done:"))
    app.add_handler(CallbackQueryHandler(_handle_deltask_callback, pattern=r"^deltask:"))

    _setup_cleanup_sweep(app, service)

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def _setup_cleanup_sweep(app: Application, service: ListifyService) -> None:
    """Register the daily sweep of old completed tasks."""
    tz = ZoneInfo(settings.TIMEZONE)
    sweep_time = dt_time(hour=settings.CLEANUP_HOUR, minute=0, tzinfo=tz)
    retention = timedelta(days=settings.COMPLETED_TASK_RETENTION_DAYS)

    async def _sweep_job_callback(context: ContextTypes.DEFAULT_TYPE) -> None:
        try:
            service.sweep_completed_tasks(retention=retention)
        except Exception as exc:
            logger.error("Completed-task sweep failed: %s", exc)

    app.job_queue.run_daily(
        _sweep_job_callback,
        time=sweep_time,
        name="completed_task_sweep",
    )

    logger.info(
        "Completed-task sweep scheduled at %02d:00 %s (retention %d days)",
        settings.CLEANUP_HOUR,
        settings.TIMEZONE,
        settings.COMPLETED_TASK_RETENTION_DAYS,
    )


def main() -> None:
    """Entry point: build the app and start polling."""
    token = settings.TELEGRAM_BOT_TOKEN
    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    logger.info("Starting Listify bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
