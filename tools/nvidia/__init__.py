from .smi import query_gpu

__all__ = ["query_gpu"]
