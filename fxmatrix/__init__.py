"""fxmatrix — republishes X/Twitter post embeds into Matrix rooms."""

__version__ = "0.1.0"
