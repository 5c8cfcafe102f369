"""promptforge_server: FastAPI REST API for the promptforge SDK.

Exposes the SessionController as an HTTP API for starting sessions,
answering clarifying questions, exporting results and reading dashboard
statistics.  Also ships the standalone task-runner and recovery CLIs.
"""
