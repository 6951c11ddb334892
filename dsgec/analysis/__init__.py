"""
Model analysis: incidence, variable classification and regimes.
"""

__all__: list[str] = []
