# main.py
import os

from dotenv import load_dotenv

project_home = os.path.abspath(os.path.dirname(__file__))

# === Load .env (supports both .env and .env.local) ===
for fname in [".env", ".env.local"]:
    dotenv_path = os.path.join(project_home, fname)
    if os.path.exists(dotenv_path):
        load_dotenv(dotenv_path)

from planner import create_app  # noqa: E402  (env must be loaded first)

app = create_app()
