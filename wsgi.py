import os
import sys
from dotenv import load_dotenv

ROOT = os.path.abspath(os.path.dirname(__file__))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# .env.local is read after .env; neither overrides variables already set
for env_name in (".env", ".env.local"):
    env_file = os.path.join(ROOT, env_name)
    if os.path.exists(env_file):
        load_dotenv(env_file)

from main import app as application  # noqa: E402  (gunicorn wsgi:application)

if __name__ == "__main__":
    print(f"planner on :5000, database {application.config['SQLALCHEMY_DATABASE_URI']}")
    application.run(host="0.0.0.0", port=int(os.getenv("PORT", "5000")))
