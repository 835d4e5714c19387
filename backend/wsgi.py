# backend/wsgi.py
from replenish import create_app

app = create_app()
