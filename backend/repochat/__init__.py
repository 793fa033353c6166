"""Repochat: question answering over indexed repositories and documentation."""
