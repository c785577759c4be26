"""Task decomposition, scheduling and sandboxed agent execution.

A note is decomposed into a strict chain of tasks (research, planning,
execution steps, review). The engine hands out the first pending task whose
predecessor completed; the orchestrator runs it in a fresh sandbox directory
through an external agent CLI and records the outcome. Task state lives in
memory for the lifetime of the process; notes, projects and agent profiles
live in the knowledge store.
"""
