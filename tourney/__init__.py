"""
Tourney - terminal dashboard for an automated tournament pipeline

Supervises data download, prediction upload, model training and prediction
generation, and lets an operator drive them with single-keystroke commands.
"""

__version__ = "0.4.0"
__author__ = "tourney contributors"
