"""
Gateway Updater - self-update of a git-tracked gateway installation
"""

__version__ = "0.1.0"
