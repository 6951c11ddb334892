"""
Model-file parsing: tokens, expressions, declarations and the block
parsers. ``dsgec.parser.pipeline`` chains them into a compiled model.
"""
