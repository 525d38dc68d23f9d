"""Post-meeting content -- follow-up emails and social posts generated from transcripts.

Provides the content schemas and repository, LLM generation, LinkedIn and
Facebook publishing, and the AutoPostingPipeline that ties them together.
"""
