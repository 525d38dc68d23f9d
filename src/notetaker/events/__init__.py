"""Calendar event store -- schemas, SQLAlchemy models, repository, and transcript codec.

Events are written by calendar sync and read by the bot scheduler and the
auto-posting pipeline. Bot fields and the transcript are only ever written
through the repository's conditional update methods.
"""
