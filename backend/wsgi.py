# backend/wsgi.py
from matmx import create_app

app = create_app()
