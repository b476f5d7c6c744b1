import json
import logging
from aiohttp import web
from pydantic import ValidationError
from database.db_client import StorageError
from database.models import ContactMessage, Question
from nyayaprep.errors import InvalidInputError, NotFoundError, PermissionDeniedError
from nyayaprep.handlers.admin import notify_admins
from nyayaprep.services import analytics, exam_service, messages, notifications, subscription
from nyayaprep.services.question_loader import QuestionBank

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

routes = web.RouteTableDef()

DB = web.AppKey("db")
BOT = web.AppKey("bot")


def reply(data, status=200):
    return web.json_response(data, status=status, dumps=lambda d: json.dumps(d, default=str))


@web.middleware
async def error_middleware(request, handler):
    """Maps rejected operations to JSON errors and stamps CORS headers on every reply."""
    try:
        response = await handler(request)
    except InvalidInputError as e:
        response = reply({"error": str(e)}, status=400)
    except PermissionDeniedError as e:
        response = reply({"error": str(e)}, status=403)
    except NotFoundError as e:
        response = reply({"error": str(e)}, status=404)
    except StorageError as e:
        logger.error(f"Storage failure on {request.path}: {e}")
        response = reply({"error": "Storage unavailable, please try again."}, status=503)
    except web.HTTPException:
        raise
    except Exception as e:
        logger.exception(f"API Error on {request.path}: {e}")
        response = reply({"error": "Internal Server Error"}, status=500)
    response.headers.update(CORS_HEADERS)
    return response


async def read_json(request) -> dict:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidInputError("Request body must be JSON.")
    if not isinstance(body, dict):
        raise InvalidInputError("Request body must be a JSON object.")
    return body


def require(source: dict, key: str) -> str:
    value = source.get(key)
    if not value:
        raise InvalidInputError(f"Missing {key}")
    return value


async def require_admin(request, admin_id: str = None):
    admin_id = admin_id or request.query.get("admin_id")
    profile = await request.app[DB].get_user(admin_id) if admin_id else None
    if not profile or profile.role != "admin":
        raise PermissionDeniedError("Admin access required.")
    return profile


def parse_question(body: dict) -> Question:
    try:
        return Question(**body)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid question: {e.errors()[0].get('msg')}")


@routes.get("/")
async def health_check(request):
    return web.Response(text="NyayaPrep API is alive!")


# --- Account ---

@routes.post("/api/users")
async def register(request):
    body = await read_json(request)
    profile = await exam_service.register_user(
        request.app[DB],
        require(body, "user_id"),
        name=body.get("name"),
        email=body.get("email"),
        phone=body.get("phone"),
        plan=body.get("plan", "free"),
    )
    if profile.subscription_plan.value != "free":
        await notify_admins(request.app.get(BOT), f"New {profile.subscription_plan.value} signup awaiting payment: "
                                                    f"{profile.name} ({profile.user_id})")
    return reply(profile.model_dump(mode="json"), status=201)


@routes.post("/api/users/{user_id}/plan")
async def select_plan(request):
    body = await read_json(request)
    user_id = request.match_info["user_id"]
    plan = require(body, "plan")
    await subscription.select_plan(request.app[DB], user_id, plan)
    if plan != "free":
        await notify_admins(request.app.get(BOT), f"User {user_id} requested the {plan} plan. Awaiting payment confirmation.")
    return reply(await exam_service.dashboard(request.app[DB], user_id))


@routes.post("/api/login")
async def login(request):
    body = await read_json(request)
    user_id = require(body, "user_id")
    db = request.app[DB]
    expired = await exam_service.on_login(db, user_id)
    return reply({"expiry_handled": expired, "dashboard": await exam_service.dashboard(db, user_id)})


@routes.get("/api/dashboard")
async def get_dashboard(request):
    user_id = require(request.query, "user_id")
    data = await exam_service.dashboard(request.app[DB], user_id)
    if data is None:
        # Identity without a profile: no entitlement, not a failure
        return reply({"profile": None, "features_unlocked": False, "premium_unlocked": False})
    return reply(data)


# --- Quiz ---

@routes.post("/api/quiz/start")
async def quiz_start(request):
    body = await read_json(request)
    status, questions = await exam_service.start_quiz(request.app[DB], body.get("user_id"))
    return reply({
        **status._asdict(),
        "questions": [q.model_dump(mode="json", exclude={"correct_answer"}) for q in questions],
    })


@routes.post("/api/quiz/submit")
async def quiz_submit(request):
    body = await read_json(request)
    selections = body.get("selections") or {}
    if not isinstance(selections, dict) or not all(v is None or isinstance(v, str) for v in selections.values()):
        raise InvalidInputError("selections must be an object of question id to answer text.")
    question_ids = body.get("question_ids") or list(selections.keys())
    if not isinstance(question_ids, list) or not all(isinstance(q, str) for q in question_ids):
        raise InvalidInputError("question_ids must be a list of ids.")
    result = await exam_service.on_quiz_submit(
        request.app[DB],
        body.get("user_id"),
        question_ids,
        selections,
        body.get("language", "en"),
    )
    return reply(result.model_dump(mode="json"))


@routes.get("/api/results")
async def quiz_results(request):
    user_id = require(request.query, "user_id")
    db = request.app[DB]
    if not subscription.premium_unlocked(await db.get_user(user_id)):
        raise PermissionDeniedError("Answer history requires a validated Premium plan.")
    try:
        limit = int(request.query.get("limit") or 0)
    except ValueError:
        raise InvalidInputError("limit must be a whole number.")
    results = await analytics.user_quiz_results(db, user_id, limit)
    return reply([r.model_dump(mode="json") for r in results])


@routes.get("/api/performance")
async def performance(request):
    user_id = require(request.query, "user_id")
    db = request.app[DB]
    if not subscription.premium_unlocked(await db.get_user(user_id)):
        raise PermissionDeniedError("Performance analytics requires a validated Premium plan.")
    stats = analytics.performance_stats(await analytics.user_quiz_results(db, user_id))
    return reply(stats.model_dump() if stats else None)


# --- Ask a teacher ---

@routes.post("/api/ask-teacher")
async def ask_teacher(request):
    body = await read_json(request)
    outcome = await exam_service.on_ask_teacher(request.app[DB], require(body, "user_id"), body.get("text"))
    return reply(outcome._asdict(), status=201 if outcome.allowed else 200)


@routes.get("/api/teacher-questions")
async def teacher_questions(request):
    user_id = require(request.query, "user_id")
    db = request.app[DB]
    profile = await db.get_user(user_id)
    questions = await notifications.user_teacher_questions(db, user_id)
    return reply([
        {**q.model_dump(mode="json"), "is_new": bool(profile) and notifications.is_new_answer(q, profile)}
        for q in questions
    ])


@routes.post("/api/notifications/clear")
async def clear_notifications(request):
    body = await read_json(request)
    await notifications.clear_notifications(request.app[DB], require(body, "user_id"))
    return reply({"unread_notifications": 0})


# --- Contact ---

@routes.post("/api/messages")
async def contact(request):
    body = await read_json(request)
    try:
        message = ContactMessage(**body)
    except ValidationError:
        raise InvalidInputError("Name, email and message are required.")
    message_id = await messages.store_message(request.app[DB], message)
    return reply({"id": message_id}, status=201)


# --- Admin: MCQ bank ---

@routes.get("/api/admin/mcqs")
async def list_mcqs(request):
    await require_admin(request)
    questions = await QuestionBank(request.app[DB]).list_questions(newest_first=True)
    return reply([q.model_dump(mode="json") for q in questions])


@routes.post("/api/admin/mcqs")
async def add_mcq(request):
    await require_admin(request)
    question = parse_question(await read_json(request))
    question_id = await QuestionBank(request.app[DB]).add_question(question)
    return reply({"id": question_id}, status=201)


@routes.get("/api/admin/mcqs/{mcq_id}")
async def get_mcq(request):
    await require_admin(request)
    question = await QuestionBank(request.app[DB]).get_question(request.match_info["mcq_id"])
    if not question:
        raise NotFoundError("MCQ not found.")
    return reply(question.model_dump(mode="json"))


@routes.put("/api/admin/mcqs/{mcq_id}")
async def update_mcq(request):
    await require_admin(request)
    question = parse_question(await read_json(request))
    await QuestionBank(request.app[DB]).update_question(request.match_info["mcq_id"], question)
    return reply({"id": request.match_info["mcq_id"]})


@routes.delete("/api/admin/mcqs/{mcq_id}")
async def delete_mcq(request):
    await require_admin(request)
    await QuestionBank(request.app[DB]).delete_questions([request.match_info["mcq_id"]])
    return reply({"deleted": 1})


@routes.post("/api/admin/mcqs/delete")
async def delete_mcqs(request):
    await require_admin(request)
    ids = (await read_json(request)).get("ids") or []
    await QuestionBank(request.app[DB]).delete_questions(ids)
    return reply({"deleted": len(ids)})


@routes.post("/api/admin/mcqs/import")
async def import_mcqs(request):
    await require_admin(request)
    ids = await QuestionBank(request.app[DB]).import_csv(await request.text())
    return reply({"imported": len(ids), "ids": ids}, status=201)


@routes.route("OPTIONS", "/{tail:.*}")
async def handle_options(request):
    return web.Response()


def create_app(db, bot=None) -> web.Application:
    app = web.Application(middlewares=[error_middleware])
    app[DB] = db
    app[BOT] = bot
    app.add_routes(routes)
    return app
