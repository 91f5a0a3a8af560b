from .main import run  # so: from modules.job_relay import run

__all__ = ["run"]
