from .read import read_attr, read_text
from .remove import remove_file, strip_block
from .write import write_attr, write_text

__all__ = ["read_attr", "read_text", "remove_file", "strip_block", "write_attr", "write_text"]
