"""
Pilot — an autonomous browser agent.

Given a natural-language goal, Pilot asks a reasoning model for one browser
action at a time, executes it against a remote Browserbase session, and
streams progress as newline-delimited JSON until the goal is reached.
"""

__version__ = "0.1.0"
