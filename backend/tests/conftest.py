import os
import sys
import tempfile

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

# Must run before any tecnicos module is imported: stores bind to the path at import time.
_TEST_DB_DIR = tempfile.mkdtemp(prefix="tecnicos-tests-")
os.environ["TECNICOS_DB_PATH"] = os.path.join(_TEST_DB_DIR, "tecnicos.sqlite3")
os.environ.pop("SMTP_HOST", None)
os.environ.pop("FIREBASE_CREDENTIALS_PATH", None)
os.environ.pop("AUTH_REQUIRED", None)
