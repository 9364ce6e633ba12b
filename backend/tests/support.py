"""Shared fixtures for the API tests.

Importing this module points the app at a throwaway SQLite file and cheap
bcrypt rounds, so it has to be imported before anything from upsc_dashboard.
"""
import os
import tempfile
import unittest

_DB_DIR = tempfile.mkdtemp(prefix="upsc-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["GEMINI_API_KEY"] = ""
os.environ["OPENROUTER_API_KEY"] = ""

from fastapi.testclient import TestClient  # noqa: E402

from upsc_dashboard import models  # noqa: E402,F401
from upsc_dashboard.accounts import create_user, seed_defaults  # noqa: E402
from upsc_dashboard.db import Base, SessionLocal, engine  # noqa: E402
from upsc_dashboard.main import create_app  # noqa: E402
from upsc_dashboard.settings import settings  # noqa: E402
from upsc_dashboard.sync import hub  # noqa: E402

ADMIN_EMAIL = settings.seed_admin_email
ADMIN_PASSWORD = settings.seed_admin_password
PASSWORD = "secret123"


def reset_db() -> None:
	Base.metadata.drop_all(bind=engine)
	Base.metadata.create_all(bind=engine)
	db = SessionLocal()
	try:
		seed_defaults(db)
	finally:
		db.close()
	hub.reset()


def add_user(email: str, role: str = "student", *, name: str = "Test User", tenant_id: str = None,
		tenant_name: str = None) -> str:
	db = SessionLocal()
	try:
		user = create_user(db, name=name, email=email, password=PASSWORD, role=role, tenant_id=tenant_id,
			tenant_name=tenant_name)
		return user.id
	finally:
		db.close()


class ApiTestCase(unittest.TestCase):
	def setUp(self):
		reset_db()
		self.app = create_app()
		self.client = TestClient(self.app)

	def login(self, email: str = ADMIN_EMAIL, password: str = PASSWORD) -> TestClient:
		client = TestClient(self.app)
		resp = client.post("/api/auth/login", json={"email": email, "password": password})
		self.assertEqual(resp.status_code, 200, resp.text)
		return client

	def admin(self) -> TestClient:
		return self.login(ADMIN_EMAIL, ADMIN_PASSWORD)

	def student(self, email: str = "student@example.com") -> TestClient:
		add_user(email)
		return self.login(email)
