import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

# Settings are read at import time; these must be in place first
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["HISTORY_BACKEND"] = "memory"
os.environ["SERIALIZE_HISTORY_WRITES"] = "false"
os.environ.pop("LANGSMITH_API_KEY", None)
