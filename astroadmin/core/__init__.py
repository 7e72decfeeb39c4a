"""
Core business logic for the admin backend.

This package is framework-agnostic - it doesn't import FastAPI or pymongo.
Tokens, ids, media rules and the public app-config view live here so they
can be tested without a database or an HTTP server.
"""
