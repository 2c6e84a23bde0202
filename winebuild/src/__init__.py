"""
winebuild - version-aware patch and build pipeline
"""

from .cli import main
from .context import Console, Context
from .settings import Settings, load_settings
from .workflow import Components, run_workflow
