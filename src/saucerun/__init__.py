"""Run browser test pages on Sauce Labs and report one pass/fail verdict."""

__version__ = "1.0.0"
