from .send import run as send_run

__all__ = ["send_run"]
