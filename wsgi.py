"""
WSGI entry point for the Project Task Assistant.

    gunicorn wsgi:app                      # serve
    FLASK_APP=wsgi.py flask db init        # first time: creates migrations/
    FLASK_APP=wsgi.py flask db migrate -m "assistant tables"
    FLASK_APP=wsgi.py flask db upgrade     # then set AUTO_CREATE_TABLES=false

APP_ENV selects the config (development | production).
"""

import os

from app import create_app

app = create_app(os.getenv("APP_ENV"))

if __name__ == "__main__":
    app.run(port=int(os.getenv("PORT", "5000")))
