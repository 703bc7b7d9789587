"""Salute Speech Transcriber: async speech recognition client and web API.

WHY: The cloud speech service only offers an asynchronous, multi-step
workflow (upload, submit, poll, download) behind short-lived bearer tokens.
This package wraps that workflow in a typed client and exposes it to a
browser through a small HTTP API and to the terminal through a CLI.

HOW: Three layers: api (token lifecycle, retrying HTTP, job client),
core (result normalization to plain text), and front-ends (orchestrator,
FastAPI server, CLI). Each layer is independently testable.

RULES:
- Front-ends talk to the service only through JobOrchestrator
- Clients are created explicitly and passed in; there is no global client
"""

__version__ = "0.1.0"
