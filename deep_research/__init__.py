"""
Deep research console core package.

Coordinates long-running research work started from a client: the jobs
subsystem tracks in-flight document generation and reconciles it against the
document library by polling, and the chat subsystem runs question/answer turns
about a document over a cancellable event stream. Upstream calls go through
the workflow client in `deep_research.client`.
"""
