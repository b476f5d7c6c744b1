import os
from datetime import timedelta, timezone
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Config
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
BOT_TOKEN = os.getenv("BOT_TOKEN")
ADMIN_CHAT_IDS = [int(x) for x in os.getenv("ADMIN_CHAT_IDS", "").split(",") if x.strip()]
PORT = int(os.getenv("PORT", 8080))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PAYMENT_CONTACT = os.getenv("PAYMENT_CONTACT", "+97798XXXXXXXX")

# "Today" is judged in this zone. Nepal is UTC+5:45.
APP_UTC_OFFSET_MINUTES = int(os.getenv("APP_UTC_OFFSET_MINUTES", 345))
LOCAL_TZ = timezone(timedelta(minutes=APP_UTC_OFFSET_MINUTES))

QUESTIONS_PER_QUIZ = int(os.getenv("QUESTIONS_PER_QUIZ", 10))

# Daily caps per plan. None = unlimited.
PLAN_LIMITS = {
    "free": {"quiz": 2, "ask_teacher": 0},
    "basic": {"quiz": 5, "ask_teacher": 2},
    "premium": {"quiz": None, "ask_teacher": 20},
}
