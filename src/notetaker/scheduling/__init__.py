"""Bot lifecycle scheduling -- periodic dispatch, transcript polling, and teardown.

BotScheduler owns the state transitions; runner.py drives them on fixed
intervals as asyncio background loops.
"""
