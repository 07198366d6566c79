from __future__ import annotations

__version__ = "0.1.0"

from cowtoggle.engine import ToggleEngine as ToggleEngine
from cowtoggle.types import CowState as CowState
from cowtoggle.types import ToggleMode as ToggleMode
from cowtoggle.walker import walk as walk
