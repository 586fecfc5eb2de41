# Keep this TINY so importing the package never drags in heavy deps.
from .main import run  # so: from modules.job_hunt import run

__all__ = ["run"]
