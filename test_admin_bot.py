from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock
import pytest
from aiogram.filters import CommandObject
from database.models import ContactMessage
from nyayaprep.handlers import admin
from nyayaprep.services import messages, notifications


def staff_message():
    message = MagicMock()
    message.answer = AsyncMock()
    message.from_user.id = 1001
    message.from_user.full_name = "Staff Member"
    return message


def command(name, args=None):
    return CommandObject(prefix="/", command=name, args=args)


def replied(message):
    return message.answer.await_args.args[0]


async def test_validate_command(store, make_user):
    await make_user(subscription_plan="basic")
    message = staff_message()
    await admin.cmd_validate(message, command("validate", "u1 4"), store)

    assert replied(message) == "✅ u1 validated for 4 week(s)."
    profile = await store.get_user("u1")
    assert profile.validated and profile.expiry_date is not None


async def test_validate_usage_and_errors(store, make_user):
    await make_user(subscription_plan="basic")

    message = staff_message()
    await admin.cmd_validate(message, command("validate", "u1 soon"), store)
    assert replied(message).startswith("Usage")

    message = staff_message()
    await admin.cmd_validate(message, command("validate", "u1 0"), store)
    assert replied(message).startswith("⚠️")
    assert not (await store.get_user("u1")).validated

    message = staff_message()
    await admin.cmd_validate(message, command("validate", "ghost 2"), store)
    assert "not found" in replied(message)


async def test_database_error_is_reported(store, make_user):
    await make_user(subscription_plan="basic")
    store.fail_writes = True
    message = staff_message()
    await admin.cmd_validate(message, command("validate", "u1 2"), store)
    assert "Database error" in replied(message)


async def test_pending_lists_only_paid_unvalidated(store, make_user, now):
    await make_user("free-user")
    await make_user("waiting", name="Gita", subscription_plan="premium")
    await make_user("active", subscription_plan="basic", validated=True, expiry_date=now + timedelta(weeks=1))

    message = staff_message()
    await admin.cmd_pending(message, store)
    text = replied(message)
    assert "Gita (waiting)" in text
    assert "free-user" not in text and "active" not in text


async def test_invalidate_command(store, make_user, now):
    await make_user(subscription_plan="basic", validated=True, expiry_date=now + timedelta(weeks=1))
    message = staff_message()
    await admin.cmd_invalidate(message, command("invalidate", "u1"), store)
    assert not (await store.get_user("u1")).validated


async def test_answer_and_reject_commands(store, make_user, now):
    profile = await make_user(subscription_plan="basic", validated=True)
    first = await notifications.save_teacher_question(store, profile, "First?", now=now)
    second = await notifications.save_teacher_question(store, profile, "Second?", now=now)

    message = staff_message()
    await admin.cmd_questions(message, store)
    assert "First?" in replied(message) and "Second?" in replied(message)

    message = staff_message()
    await admin.cmd_answer(message, command("answer", f"{first} It is fundamental."), store)
    answered = await notifications.get_teacher_question(store, first)
    assert answered.answer_text == "It is fundamental."
    assert answered.answered_by == "Staff Member"
    assert (await store.get_user("u1")).unread_notifications == 1

    message = staff_message()
    await admin.cmd_answer(message, command("answer", f"{first} Again"), store)
    assert replied(message).startswith("⚠️")

    message = staff_message()
    await admin.cmd_reject(message, command("reject", second), store)
    assert (await notifications.get_teacher_question(store, second)).status.value == "rejected"

    message = staff_message()
    await admin.cmd_questions(message, store)
    assert replied(message) == "✅ No pending teacher questions."


@pytest.mark.parametrize("args", [None, "u1", "u1 downloads"])
async def test_reset_usage_rejects_bad_args(store, args):
    message = staff_message()
    await admin.cmd_reset(message, command("reset", args), store)
    assert replied(message).startswith("Usage")


async def test_reset_command(store, make_user, now):
    await make_user(subscription_plan="basic", validated=True, ask_teacher_count=2, last_ask_teacher_date=now)
    message = staff_message()
    await admin.cmd_reset(message, command("reset", "u1 ask"), store)
    assert (await store.get_user("u1")).ask_teacher_count == 0


async def test_messages_command(store):
    message = staff_message()
    await admin.cmd_messages(message, store)
    assert replied(message) == "📭 No contact messages."

    await messages.store_message(store, ContactMessage(name="Hari", email="hari@example.com", message="Call me"))
    message = staff_message()
    await admin.cmd_messages(message, store)
    assert "Call me" in replied(message)


async def test_notify_admins_is_best_effort(monkeypatch):
    monkeypatch.setattr(admin.config, "ADMIN_CHAT_IDS", [1, 2])
    bot = MagicMock()
    bot.send_message = AsyncMock(side_effect=[Exception("blocked"), None])

    await admin.notify_admins(bot, "New signup")
    assert bot.send_message.await_count == 2
    await admin.notify_admins(None, "ignored")


async def test_long_question_queue_is_split_under_telegram_limit(store, make_user, now):
    profile = await make_user(subscription_plan="premium", validated=True)
    for i in range(120):
        await notifications.save_teacher_question(store, profile, f"Question {i}: " + "explain the writ " * 8, now=now)
    await notifications.save_teacher_question(store, profile, "x" * 5000, now=now)

    message = staff_message()
    await admin.cmd_questions(message, store)

    sent = [call.args[0] for call in message.answer.await_args_list]
    assert len(sent) > 1
    assert all(len(text) <= admin.TELEGRAM_MESSAGE_LIMIT for text in sent)
    body = "".join(sent)
    assert all(f"Question {i}:" in body for i in range(120))


async def test_users_lists_everyone_with_state_and_expiry(store, make_user, now):
    await make_user("u1", name="Ram Thapa", email="ram@example.com")
    await make_user("u2", name="Sita Rai", phone="9800000000", subscription_plan="basic",
                    validated=True, expiry_date=now + timedelta(weeks=52))

    message = staff_message()
    await admin.cmd_users(message, command("users"), store)
    text = replied(message)
    assert "Users (2)" in text
    assert "Ram Thapa (u1) - free, free" in text
    assert "Sita Rai (u2) - basic, active until " in text

    message = staff_message()
    await admin.cmd_users(message, command("users", "9800"), store)
    assert "Sita Rai" in replied(message) and "Ram" not in replied(message)

    message = staff_message()
    await admin.cmd_users(message, command("users", "nobody-like-this"), store)
    assert replied(message) == "🔍 No matching users."


async def test_users_reply_is_split_when_long(store, make_user):
    for i in range(200):
        await make_user(f"user-{i}", name=f"Student number {i} with a fairly long display name")
    message = staff_message()
    await admin.cmd_users(message, command("users"), store)
    sent = [call.args[0] for call in message.answer.await_args_list]
    assert len(sent) > 1
    assert all(len(text) <= admin.TELEGRAM_MESSAGE_LIMIT for text in sent)


async def test_stats_command(store, make_user, make_question, now):
    await make_user("u1")
    waiting = await make_user("u2", subscription_plan="premium")
    await make_user("u3", subscription_plan="basic", validated=True, expiry_date=now + timedelta(weeks=52))
    await make_question("q1")
    await notifications.save_teacher_question(store, waiting, "Pending?", now=now)

    message = staff_message()
    await admin.cmd_stats(message, store)
    text = replied(message)
    assert "Users: 3 (free 1, basic 1, premium 1)" in text
    assert "Active paid: 1" in text
    assert "Awaiting validation: 1" in text
    assert "MCQs: 1" in text
    assert "Pending teacher questions: 1" in text
