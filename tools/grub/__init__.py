from .cmdline import find_key, read_tokens, regenerate, remove_token, set_token

__all__ = ["find_key", "read_tokens", "regenerate", "remove_token", "set_token"]
