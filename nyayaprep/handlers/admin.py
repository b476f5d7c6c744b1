import logging
from typing import List
from aiogram import Router, F, Bot, types
from aiogram.filters import Command, CommandObject
from database.db_client import StorageError
from database.models import SubscriptionPlan, utc_now
from nyayaprep import config
from nyayaprep.errors import NyayaPrepError
from nyayaprep.services import exam_service, messages, notifications, quota_tracker, subscription

logger = logging.getLogger(__name__)

router = Router()
# Staff only
router.message.filter(F.from_user.id.in_(config.ADMIN_CHAT_IDS))

RESET_FEATURES = {"quiz": quota_tracker.QUIZ, "ask": quota_tracker.ASK_TEACHER}

TELEGRAM_MESSAGE_LIMIT = 4096
MAX_LINE_LENGTH = 1000


async def notify_admins(bot: Bot, text: str):
    """
    Best-effort ping to every staff chat. A failed send is logged, never raised.
    """
    if bot is None:
        return
    for chat_id in config.ADMIN_CHAT_IDS:
        try:
            await bot.send_message(chat_id, text)
        except Exception as e:
            logger.error(f"Failed to notify admin {chat_id}: {e}")


def split_args(command: CommandObject, count: int):
    """Splits command args into `count` parts; the last part keeps its spaces."""
    parts = (command.args or "").split(maxsplit=count - 1)
    if len(parts) < count:
        raise ValueError
    return parts


async def answer_lines(message: types.Message, header: str, lines: List[str], separator: str = "\n"):
    """
    Sends `lines` under `header`, split across as many messages as Telegram's
    size limit needs. An oversized single line is cut short.
    """
    chunk = header
    for line in lines:
        if len(line) > MAX_LINE_LENGTH:
            line = line[:MAX_LINE_LENGTH - 1] + "…"
        if len(chunk) + len(separator) + len(line) > TELEGRAM_MESSAGE_LIMIT:
            await message.answer(chunk)
            chunk = line
        else:
            chunk = f"{chunk}{separator}{line}" if chunk else line
    if chunk:
        await message.answer(chunk)


async def run_staff_action(message: types.Message, action, done_text: str):
    try:
        await action
    except NyayaPrepError as e:
        await message.answer(f"⚠️ {e}")
        return
    except StorageError as e:
        logger.error(f"Staff action failed: {e}")
        await message.answer("⚠️ Database error. Nothing was confirmed, please try again.")
        return
    await message.answer(done_text)


@router.message(Command("pending"))
async def cmd_pending(message: types.Message, db):
    users = await db.list_users({"validated": False})
    waiting = [u for u in users if u.subscription_plan != SubscriptionPlan.FREE]
    if not waiting:
        await message.answer("✅ No users awaiting validation.")
        return
    lines = [f"• {u.name} ({u.user_id}) - {u.subscription_plan.value} - {u.phone or u.email}" for u in waiting]
    await answer_lines(message, "⏳ Awaiting validation:", lines)


@router.message(Command("users"))
async def cmd_users(message: types.Message, command: CommandObject, db):
    users = await exam_service.find_users(db, command.args)
    if not users:
        await message.answer("🔍 No matching users.")
        return
    now = utc_now()
    lines = []
    for u in users:
        expiry = f" until {u.expiry_date:%Y-%m-%d}" if u.expiry_date else ""
        state = subscription.subscription_state(u, now).value
        lines.append(f"• {u.name} ({u.user_id}) - {u.subscription_plan.value}, {state}{expiry} - {u.phone or u.email}")
    await answer_lines(message, f"👥 Users ({len(users)}):", lines)


@router.message(Command("stats"))
async def cmd_stats(message: types.Message, db):
    counts = await exam_service.overview(db)
    await message.answer(
        "📊 Overview\n"
        f"Users: {counts['users']} (free {counts['free']}, basic {counts['basic']}, premium {counts['premium']})\n"
        f"Active paid: {counts['active']}\n"
        f"Awaiting validation: {counts['pending_validation']}\n"
        f"MCQs: {counts['mcqs']}\n"
        f"Pending teacher questions: {counts['pending_questions']}"
    )


@router.message(Command("validate"))
async def cmd_validate(message: types.Message, command: CommandObject, db):
    try:
        user_id, weeks = split_args(command, 2)
        weeks = int(weeks)
    except ValueError:
        await message.answer("Usage: /validate <user_id> <weeks>")
        return
    await run_staff_action(
        message,
        exam_service.on_staff_validate(db, user_id, weeks),
        f"✅ {user_id} validated for {weeks} week(s).",
    )


@router.message(Command("invalidate"))
async def cmd_invalidate(message: types.Message, command: CommandObject, db):
    if not command.args:
        await message.answer("Usage: /invalidate <user_id>")
        return
    user_id = command.args.strip()
    await run_staff_action(
        message,
        exam_service.on_staff_validate(db, user_id, None),
        f"⏸️ {user_id} set to pending validation.",
    )


@router.message(Command("questions"))
async def cmd_questions(message: types.Message, db):
    pending = await notifications.pending_teacher_questions(db)
    if not pending:
        await message.answer("✅ No pending teacher questions.")
        return
    lines = [f"#{q.id} from {q.user_name} ({q.asked_at:%Y-%m-%d %H:%M}):\n{q.question_text}" for q in pending]
    await answer_lines(message, "❓ Pending questions (oldest first):", lines, separator="\n\n")


@router.message(Command("answer"))
async def cmd_answer(message: types.Message, command: CommandObject, db):
    try:
        question_id, text = split_args(command, 2)
    except ValueError:
        await message.answer("Usage: /answer <question_id> <answer text>")
        return
    staff = message.from_user.full_name or str(message.from_user.id)
    await run_staff_action(
        message,
        exam_service.on_staff_answer(db, question_id, text, staff),
        f"✅ Answer saved for #{question_id}. The student has been notified.",
    )


@router.message(Command("reject"))
async def cmd_reject(message: types.Message, command: CommandObject, db):
    if not command.args:
        await message.answer("Usage: /reject <question_id>")
        return
    question_id = command.args.strip()
    staff = message.from_user.full_name or str(message.from_user.id)
    await run_staff_action(
        message,
        notifications.reject_question(db, question_id, staff),
        f"🚫 Question #{question_id} rejected.",
    )


@router.message(Command("reset"))
async def cmd_reset(message: types.Message, command: CommandObject, db):
    try:
        user_id, feature = split_args(command, 2)
        feature = RESET_FEATURES[feature.strip().lower()]
    except (ValueError, KeyError):
        await message.answer("Usage: /reset <user_id> quiz|ask")
        return
    await run_staff_action(
        message,
        quota_tracker.reset_usage(db, user_id, feature),
        f"🔄 {feature} usage cleared for {user_id}.",
    )


@router.message(Command("messages"))
async def cmd_messages(message: types.Message, db):
    inbox = await messages.fetch_messages(db)
    if not inbox:
        await message.answer("📭 No contact messages.")
        return
    lines = [f"{m.name} <{m.email}> {m.phone or ''}\n{m.message}" for m in inbox]
    await answer_lines(message, "📬 Latest messages:", lines, separator="\n\n")
