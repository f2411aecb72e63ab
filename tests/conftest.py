import sys
from pathlib import Path

# Add repo root to path so render.py imports without installation
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))
