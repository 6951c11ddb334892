"""
Model-file input: source lines and block extraction.
"""

from dsgec.io.source import SourceLine, VALID_EXTENSIONS, lines_from_text, read_model_file, resolve_model_file
from dsgec.io.blocks import Block, BlockSet, extract_blocks

__all__ = [
    "Block",
    "BlockSet",
    "SourceLine",
    "VALID_EXTENSIONS",
    "extract_blocks",
    "lines_from_text",
    "read_model_file",
    "resolve_model_file",
]
