"""
Test configuration: make the package and the shared tile fixtures importable
without installing the project.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent / "unit"))
