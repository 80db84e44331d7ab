import sys
from pathlib import Path

# Tests run against src/ without installing; shared builders live in tests/
ROOT = Path(__file__).resolve().parents[1]
for path in (ROOT / "src", ROOT / "tests"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))
